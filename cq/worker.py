"""
Message boundary for running compute() off the caller's thread or process.

Requests are plain mappings so they can cross a process boundary:

    {"buffer": <bytes-like>, "config": {"mode": "quantize", "k": 8, "grayscale": False}}
    {"buffer": <bytes-like>, "config": {"mode": "recolor", "palette": [[10, 10, 10], ...]}}

Responses are {"buffer": bytes, "palette": [[r, g, b], ...]}, or None when the
request could not be served.
"""

import random
from collections.abc import Mapping
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
import typer

from cq.core_types import Mode, QuantizeRequest, RecolorRequest
from cq.errors import ColorQuantError, MalformedRequestError
from cq.quantize import compute
from cq.settings import DEFAULT_NUM_COLORS

Request = Union[QuantizeRequest, RecolorRequest]


def config_from_dict(config: Any) -> Request:
    """Build the tagged request variant named by config['mode']."""
    if isinstance(config, (QuantizeRequest, RecolorRequest)):
        return config
    if not isinstance(config, Mapping):
        raise MalformedRequestError(f"config must be a mapping, got {type(config).__name__}")
    try:
        mode = Mode(config.get("mode"))
    except ValueError as e:
        raise MalformedRequestError(f"config mode must be 'quantize' or 'recolor', got {config.get('mode')!r}") from e

    if mode is Mode.RECOLOR:
        if "palette" not in config:
            raise MalformedRequestError("recolor config has no palette")
        return RecolorRequest(palette=config["palette"])
    return QuantizeRequest(k=config.get("k", DEFAULT_NUM_COLORS), grayscale=bool(config.get("grayscale", False)))


def parse_request(payload: Any) -> Tuple[Any, Request]:
    if not isinstance(payload, Mapping):
        raise MalformedRequestError("request payload must be a mapping")
    buffer = payload.get("buffer")
    config = payload.get("config")
    if buffer is None or config is None:
        raise MalformedRequestError("request payload needs both 'buffer' and 'config'")
    if not isinstance(buffer, (bytes, bytearray, memoryview, np.ndarray)):
        raise MalformedRequestError(f"unusable buffer of type {type(buffer).__name__}")
    return buffer, config_from_dict(config)


def handle_message(payload: Any, seed: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """
    Serve one request payload. Returns the response mapping, or None ("no result")
    if the request was malformed or compute() rejected it.
    """
    try:
        buffer, config = parse_request(payload)
        rng = random.Random(seed) if seed is not None else None
        result = compute(buffer, config, rng=rng)
    except ColorQuantError as e:
        typer.secho(f"Request rejected: {e}", fg=typer.colors.RED, err=True)
        return None
    return {
        "buffer": result.buffer.tobytes(),
        "palette": [list(color) for color in result.palette],
    }


class QuantizeDispatcher:
    """
    Runs handle_message on a thread or process pool.

    Cancellation happens here, on the returned futures; the engine itself has none.
    """

    def __init__(self, max_workers: Optional[int] = None, use_processes: bool = False):
        executor_cls = ProcessPoolExecutor if use_processes else ThreadPoolExecutor
        self._executor: Executor = executor_cls(max_workers=max_workers)

    def submit(self, payload: Any, seed: Optional[int] = None) -> "Future[Optional[Dict[str, Any]]]":
        return self._executor.submit(handle_message, payload, seed)

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=cancel_pending)

    def __enter__(self) -> "QuantizeDispatcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)
