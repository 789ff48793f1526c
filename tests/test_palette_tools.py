# tests/test_palette_tools.py
import math
import random

import numpy as np
import pytest
from PIL import Image, ImageDraw

from cq import palette_tools
from cq.core_types import Color
from cq.errors import InvalidBufferError, InvalidPaletteError


class ScriptedRandom:
    def __init__(self, picks):
        self.picks = list(picks)
        self.calls = 0

    def randrange(self, stop):
        value = self.picks[self.calls % len(self.picks)]
        self.calls += 1
        return value


def make_buffer(colors, alpha=255):
    return bytes(b for color in colors for b in (*color, alpha))


def create_dummy_image(path):
    img = Image.new("RGB", (256, 256), color=(150, 120, 200))
    draw = ImageDraw.Draw(img)
    draw.rectangle([(50, 50), (150, 150)], fill=(200, 50, 50))
    draw.ellipse([(100, 100), (200, 200)], fill=(50, 200, 50))
    img.save(path)


# --- recolor ---

def test_recolor_with_single_color_palette():
    source = make_buffer([(1, 2, 3), (200, 100, 0), (255, 255, 255)], alpha=40)
    out = palette_tools.recolor(source, [Color(10, 10, 10)])
    assert out.reshape(-1, 4).tolist() == [[10, 10, 10, 255]] * 3


def test_recolor_picks_nearest_palette_entry():
    palette = [Color(0, 0, 0), Color(255, 255, 255), Color(255, 0, 0)]
    source = make_buffer([(20, 10, 5), (240, 250, 235), (210, 30, 20)])
    out = palette_tools.recolor(source, palette)
    assert out.reshape(-1, 4).tolist() == [[0, 0, 0, 255], [255, 255, 255, 255], [255, 0, 0, 255]]


def test_recolor_is_idempotent_on_palette_colors():
    palette = [Color(15, 56, 15), Color(48, 98, 48), Color(139, 172, 15), Color(155, 188, 15)]
    source = make_buffer([palette[i % 4] for i in range(12)], alpha=0)
    once = palette_tools.recolor(source, palette)
    twice = palette_tools.recolor(once, palette)
    assert np.array_equal(once, twice)
    expected = np.frombuffer(make_buffer([palette[i % 4] for i in range(12)]), dtype=np.uint8)
    assert np.array_equal(once, expected)


def test_recolor_with_assignment_skips_nearest_search():
    palette = [Color(1, 1, 1), Color(250, 250, 250)]
    # Deliberately "wrong" assignment: it must be honoured as given
    source = make_buffer([(255, 255, 255), (0, 0, 0)])
    out = palette_tools.recolor(source, palette, np.array([0, 1]))
    assert out.reshape(-1, 4).tolist() == [[1, 1, 1, 255], [250, 250, 250, 255]]


def test_recolor_does_not_mutate_input():
    source = np.frombuffer(make_buffer([(9, 8, 7), (6, 5, 4)], alpha=1), dtype=np.uint8).copy()
    before = source.copy()
    palette_tools.recolor(source, [Color(0, 0, 0)])
    assert np.array_equal(source, before)


def test_recolor_rejects_mismatched_assignment():
    with pytest.raises(InvalidBufferError):
        palette_tools.recolor(make_buffer([(0, 0, 0)] * 3), [Color(0, 0, 0)], np.array([0, 0]))
    with pytest.raises(InvalidPaletteError):
        palette_tools.recolor(make_buffer([(0, 0, 0)]), [Color(0, 0, 0)], np.array([4]))


def test_recolor_empty_buffer():
    assert palette_tools.recolor(b"", [Color(1, 2, 3)]).size == 0


# --- palette validation ---

def test_validate_palette_accepts_several_entry_shapes():
    palette = palette_tools.validate_palette([
        Color(1, 2, 3),
        (4, 5, 6),
        [7.4, 8.6, 9],
        {"r": 10, "g": 11, "b": 12},
        {"red": 13, "green": 14, "blue": 15},
        "#ff8000",
        "0f0",
        np.array([16, 17, 18], dtype=np.uint8),
    ])
    assert palette == [
        Color(1, 2, 3), Color(4, 5, 6), Color(7, 9, 9), Color(10, 11, 12),
        Color(13, 14, 15), Color(255, 128, 0), Color(0, 255, 0), Color(16, 17, 18),
    ]


def test_validate_palette_allows_pure_black():
    assert palette_tools.validate_palette([{"r": 0, "g": 0, "b": 0}]) == [Color(0, 0, 0)]


def test_validate_palette_clamps_out_of_range_channels():
    assert palette_tools.validate_palette([(-20, 300, 128)]) == [Color(0, 255, 128)]


@pytest.mark.parametrize("bad_entry", [
    {"r": 1, "g": 2},
    {"r": 1, "g": None, "b": 3},
    {"r": 1, "g": "2", "b": 3},
    {"r": 1, "g": math.nan, "b": 3},
    {"r": True, "g": 2, "b": 3},
    {"x": 1},
    (1, 2),
    (1, 2, 3, 4),
    "#12345",
    42,
    None,
])
def test_validate_palette_rejects_invalid_entries(bad_entry):
    with pytest.raises(InvalidPaletteError):
        palette_tools.validate_palette([Color(1, 1, 1), bad_entry])


@pytest.mark.parametrize("bad_palette", [[], None, "#ffffff"])
def test_validate_palette_rejects_empty_or_non_sequence(bad_palette):
    with pytest.raises(InvalidPaletteError):
        palette_tools.validate_palette(bad_palette)


def test_palette_usage_counts_pixels():
    assert palette_tools.palette_usage(np.array([0, 2, 2, 0, 2]), 4) == [2, 0, 3, 0]


# --- palette extraction ---

def test_extract_palette_from_dummy_image(tmp_path):
    img_path = tmp_path / "dummy_input.png"
    create_dummy_image(img_path)

    # Seed the centroids on background, red rectangle and green ellipse pixels
    # of the 100x100 downsample.
    palette = palette_tools.extract_palette_from_image(
        str(img_path), max_colors=3, rng=ScriptedRandom([0, 25 * 100 + 25, 60 * 100 + 60])
    )
    assert len(palette) == 3

    expected_colors = [
        (150, 120, 200),  # background
        (200, 50, 50),    # red rectangle
        (50, 200, 50),    # green ellipse
    ]
    for expected_color in expected_colors:
        assert any(
            np.linalg.norm(np.array(expected_color) - np.array(extracted_color)) < 15
            for extracted_color in palette
        ), f"Expected color {expected_color} not close to any extracted palette color."


def test_extract_palette_respects_max_colors(tmp_path):
    img = Image.new("RGB", (30, 10))
    colors = [(255, 255, 0), (0, 255, 255), (255, 0, 255)]
    for i, color in enumerate(colors):
        img.paste(color, (i * 10, 0, (i + 1) * 10, 10))
    img_path = tmp_path / "three_colors.png"
    img.save(img_path)

    palette = palette_tools.extract_palette_from_image(img_path, max_colors=5, rng=random.Random(0))
    assert len(palette) == 5
    assert all(isinstance(entry, Color) for entry in palette)


def test_extract_palette_with_single_color_image(tmp_path):
    color = (123, 222, 64)
    img_path = tmp_path / "single.png"
    Image.new("RGB", (10, 10), color=color).save(img_path)

    palette = palette_tools.extract_palette_from_image(img_path, max_colors=4)
    assert palette == [Color(*color)] * 4


def test_extract_palette_invalid_path():
    with pytest.raises(FileNotFoundError):
        palette_tools.extract_palette_from_image("nonexistent_file.png", max_colors=3)
