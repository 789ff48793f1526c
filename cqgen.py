import random
import sys
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import rich.traceback
import typer

from cq import image_io, legend, palette_tools
from cq.core_types import QuantizeRequest, RecolorRequest
from cq.distance import nearest_color_indices
from cq.errors import ColorQuantError
from cq.pixels import colors_of
from cq.quantize import compute
from cq.settings import DEFAULT_NUM_COLORS, FIXED_PALETTES, PRESETS, Convergence, options_from_env


class CQFile(Enum):
    QUANTIZED = "quantized"
    PALETTE_LEGEND = "palette_legend"


CQ_FILE_BASENAMES: Dict[CQFile, str] = {
    CQFile.QUANTIZED: "quantized.png",
    CQFile.PALETTE_LEGEND: "palette_legend.png",
}


def validate_output_dir(
    output_dir: Path, overwrite: bool = False, expect: Optional[List[CQFile]] = None,
) -> Dict[CQFile, Path]:
    if expect and not overwrite:
        clobbered_files_found = [
            str(output_dir / CQ_FILE_BASENAMES[key]) for key in expect if (output_dir / CQ_FILE_BASENAMES[key]).exists()
        ]
        if clobbered_files_found:
            typer.secho("Error: Files already exist:", fg=typer.colors.RED)
            for path_str in clobbered_files_found: typer.secho(f"  {path_str}", fg=typer.colors.RED)
            typer.secho("Use --yes (-y) to overwrite.", fg=typer.colors.YELLOW); raise typer.Exit(code=1)

    return {key: output_dir / name for key, name in CQ_FILE_BASENAMES.items()}


def cq_cli(
    input_path: Path = typer.Argument(
        ...,
        help="Input image file (e.g., image.jpg).",
        metavar="INPUT_FILE",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    output_dir: Path = typer.Argument(
        ...,
        help="Directory for output files. Will be created if it doesn't exist.",
        metavar="OUTPUT_DIRECTORY",
        file_okay=False, dir_okay=True, writable=True, resolve_path=True,
    ),
    # --- Quantize Options ---
    preset: Optional[str] = typer.Option(
        None, help=f"Colour count preset: {', '.join(PRESETS)}."
    ),
    num_colors: Optional[int] = typer.Option(
        None, "--num-colors", "-k", help="Number of colours to derive with k-means. Default: 3."
    ),
    grayscale: bool = typer.Option(False, "--grayscale", help="Convert to luma grayscale before clustering."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for centroid initialisation (reproducible runs)."),
    max_iterations: Optional[int] = typer.Option(
        None, "--max-iterations", min=1, help="k-means iteration cap. Default: 20 (or CQ_MAX_ITERATIONS)."
    ),
    epsilon: Optional[float] = typer.Option(
        None, "--epsilon", min=0.0, help="Convergence threshold. Default: 1e-4 (or CQ_EPSILON)."
    ),
    convergence: Optional[Convergence] = typer.Option(
        None, "--convergence", case_sensitive=False,
        help="Stability test: centroid movement or cluster variance. Default: centroid (or CQ_CONVERGENCE)."
    ),
    # --- Fixed Palette Options ---
    palette: Optional[List[str]] = typer.Option(
        None, "--palette", help="Fixed palette colour as hex (e.g. '#1d2b53'). Can be specified multiple times."
    ),
    fixed_palette: Optional[str] = typer.Option(
        None, "--fixed-palette", help=f"Named fixed palette: {', '.join(FIXED_PALETTES)}."
    ),
    palette_from: Optional[Path] = typer.Option(
        None, "--palette-from", help="Path to image to extract fixed palette from.",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    # --- Legend Options ---
    font_path: Optional[Path] = typer.Option(
        None, "--font-path", help="Path to a .ttf font file for the legend.",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    swatch_size: int = typer.Option(40, "--swatch-size", min=10, help="Legend swatch size. Default: 40px."),
    skip_legend: bool = typer.Option(False, "--skip-legend", help="Skip generating palette legend."),
    # --- Output and Operational Options ---
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Echo k-means progress per iteration."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite existing files."),
):
    """
    Reduces an image to a small palette with k-means, or remaps it onto a fixed palette.
    """
    command_line_str = " ".join(sys.argv)

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        typer.echo(f"Using output directory: {output_dir}")
    except OSError as e:
        typer.secho(f"Error creating output directory {output_dir}: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)

    expected_outputs = [CQFile.QUANTIZED] if skip_legend else [CQFile.QUANTIZED, CQFile.PALETTE_LEGEND]
    output_paths = validate_output_dir(output_dir, overwrite=yes, expect=expected_outputs)

    palette_sources = [name for name, given in (
        ("--palette", bool(palette)), ("--fixed-palette", fixed_palette is not None), ("--palette-from", palette_from is not None),
    ) if given]
    if len(palette_sources) > 1:
        typer.secho(f"Error: {' and '.join(palette_sources)} are mutually exclusive.", fg=typer.colors.RED); raise typer.Exit(code=1)
    if palette_sources:
        # --num-colors still sizes the palette extracted by --palette-from
        ignored_options = [name for name, given in (
            ("--num-colors", num_colors is not None and palette_from is None), ("--preset", preset is not None), ("--grayscale", grayscale),
        ) if given]
        if ignored_options:
            typer.secho(
                f"Warning: {', '.join(ignored_options)} ignored when {palette_sources[0]} supplies the palette.",
                fg=typer.colors.YELLOW,
            )

    rng = random.Random(seed)
    try:
        options = options_from_env(
            max_iterations=max_iterations, epsilon=epsilon, convergence=convergence, verbose=verbose or None,
        )

        if palette:
            config = RecolorRequest(palette=palette)
        elif fixed_palette is not None:
            if fixed_palette not in FIXED_PALETTES:
                typer.secho(f"Error: Unknown fixed palette '{fixed_palette}'. Choose from: {', '.join(FIXED_PALETTES)}.", fg=typer.colors.RED)
                raise typer.Exit(code=1)
            config = RecolorRequest(palette=FIXED_PALETTES[fixed_palette])
        elif palette_from is not None:
            extract_colors = num_colors if num_colors is not None else 8
            typer.echo(f"Extracting {extract_colors}-colour palette from {palette_from.name}...")
            config = RecolorRequest(
                palette=palette_tools.extract_palette_from_image(palette_from, max_colors=extract_colors, rng=rng)
            )
        else:
            effective_num_colors = num_colors
            if preset is not None:
                if preset not in PRESETS:
                    typer.secho(f"Error: Unknown preset '{preset}'. Choose from: {', '.join(PRESETS)}.", fg=typer.colors.RED)
                    raise typer.Exit(code=1)
                typer.echo(f"Applying preset: '{preset}'")
                if effective_num_colors is None: effective_num_colors = PRESETS[preset]
            if effective_num_colors is None: effective_num_colors = DEFAULT_NUM_COLORS
            typer.echo(f"Quantizing to {effective_num_colors} colours{' (grayscale)' if grayscale else ''}.")
            config = QuantizeRequest(k=effective_num_colors, grayscale=grayscale)

        buffer, size = image_io.load_image_buffer(input_path)
        typer.echo(f"Loaded {input_path.name}: {size[0]}x{size[1]} pixels.")
        result = compute(buffer, config, rng=rng, options=options)
    except ColorQuantError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)

    quantized_path = output_paths[CQFile.QUANTIZED]
    image_io.save_png(
        image_io.buffer_to_image(result.buffer, size),
        quantized_path,
        palette=result.palette,
        command_line_invocation=command_line_str,
        additional_metadata={
            "FileType": "Quantized Image",
            "SourceImage": str(input_path.name),
            "Mode": config.mode.value,
            "PaletteColors": str(len(result.palette)),
        },
    )
    typer.echo(f"Quantized image saved to: {quantized_path}")
    for idx, color in enumerate(result.palette):
        typer.echo(f"  {idx:>3}: {color.hex}  rgb{tuple(color)}")

    if not skip_legend:
        usage = palette_tools.palette_usage(
            nearest_color_indices(colors_of(result.buffer), result.palette), len(result.palette)
        )
        legend_image = legend.create_legend_image(
            result.palette, font_path=str(font_path) if font_path else None, swatch_size=swatch_size, usage=usage,
        )
        if legend_image:
            legend_path = output_paths[CQFile.PALETTE_LEGEND]
            image_io.save_png(
                legend_image,
                legend_path,
                palette=result.palette,
                command_line_invocation=command_line_str,
                additional_metadata={"FileType": "Palette Legend", "SwatchSize": str(swatch_size)},
            )
            typer.echo(f"Palette legend saved to: {legend_path}")
        else:
            typer.secho("Warning: Palette legend image could not be generated (empty palette).", fg=typer.colors.YELLOW)

    typer.secho("\nProcessing complete!", fg=typer.colors.GREEN)
    typer.echo(f"Outputs in: {output_dir.resolve()}")


def main():
    rich.traceback.install(show_locals=False, suppress=[typer])
    typer.run(cq_cli)


if __name__ == "__main__":
    main()
