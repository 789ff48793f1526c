import os
from typing import Optional, Sequence

from PIL import Image, ImageDraw, ImageFont

from cq.distance import distance


def _label_fill(color) -> tuple:
    """Black or white, whichever stands out more against the swatch."""
    to_black = distance(color, (0, 0, 0))
    to_white = distance(color, (255, 255, 255))
    return (0, 0, 0) if to_black > to_white else (255, 255, 255)


def create_legend_image(
    palette: Sequence,
    font_path: Optional[str] = None,
    font_size: int = 14,
    swatch_size: int = 40,
    padding: int = 10,
    usage: Optional[Sequence[int]] = None,
) -> Optional[Image.Image]:
    """
    Draws a row of palette swatches, each labelled with its palette index.

    Args:
        palette (list): Colours as Color / (r, g, b) triples.
        font_path (str, optional): Path to a TTF font file.
        font_size (int): Font size for the index numbers.
        swatch_size (int): Width/height of each swatch.
        padding (int): Space around and between swatches.
        usage (list[int], optional): Pixel count per entry; swatches of unused
            entries get a grey outline.

    Returns:
        PIL.Image.Image: the legend, or None for an empty palette.
    """
    num_colors = len(palette)
    if num_colors == 0:
        return None

    width = (swatch_size * num_colors) + (padding * (num_colors + 1))
    height = swatch_size + (2 * padding)
    image = Image.new("RGB", (width, height), color=(255, 255, 255))
    draw = ImageDraw.Draw(image)

    loaded_font = None
    if font_path and os.path.isfile(font_path):
        try:
            loaded_font = ImageFont.truetype(font_path, font_size)
        except OSError:
            loaded_font = None
    if loaded_font is None:
        loaded_font = ImageFont.load_default(size=font_size)

    for idx, color in enumerate(palette):
        fill_color = tuple(int(c) for c in color)
        x0 = padding + idx * (swatch_size + padding)
        y0 = padding
        unused = usage is not None and idx < len(usage) and usage[idx] == 0
        draw.rectangle(
            [x0, y0, x0 + swatch_size, y0 + swatch_size],
            fill=fill_color,
            outline=(160, 160, 160) if unused else (0, 0, 0),
        )

        text = str(idx)
        left, top, right, bottom = loaded_font.getbbox(text)
        text_x = x0 + (swatch_size - (right - left)) / 2.0 - left
        text_y = y0 + (swatch_size - (bottom - top)) / 2.0 - top
        draw.text((text_x, text_y), text, fill=_label_fill(fill_color), font=loaded_font)

    return image
