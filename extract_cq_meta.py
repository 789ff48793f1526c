#!/usr/bin/env python3
import json
import sys
from pathlib import Path

from PIL import UnidentifiedImageError

from cq.image_io import read_metadata


def extract_png_metadata(filepath: Path) -> int:
    """
    Prints the colorquant metadata of a PNG file. Returns a process exit code.
    """
    print(f"--- colorquant metadata for PNG: {filepath.name} ---")
    try:
        metadata = read_metadata(filepath)
    except (FileNotFoundError, UnidentifiedImageError) as e:
        print(f"Error processing PNG file {filepath}: {e}")
        return 1

    if not metadata:
        print("  No colorquant-specific metadata found.")
    for key, value in metadata.items():
        if key == "palette":
            print("  palette:")
            for idx, rgb in enumerate(json.loads(value)):
                print(f"    {idx:>3}: #{rgb[0]:02x}{rgb[1]:02x}{rgb[2]:02x}  rgb{tuple(rgb)}")
        else:
            print(f"  {key}: {value}")
    print("-" * (34 + len(filepath.name)))
    return 0


def main():
    if len(sys.argv) < 2:
        print("Usage: python extract_cq_meta.py <filename.png>")
        sys.exit(1)

    filepath = Path(sys.argv[1])
    if not filepath.is_file():
        print(f"Error: File not found: {filepath}")
        sys.exit(1)
    if filepath.suffix.lower() != ".png":
        print(f"Error: Unsupported file type '{filepath.suffix.lower()}'. Please provide a .png file.")
        sys.exit(1)

    sys.exit(extract_png_metadata(filepath))


if __name__ == "__main__":
    main()
