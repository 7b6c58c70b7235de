#!/usr/bin/env python3
"""Convert Cinepak encoded BMP images to raw 24-bit BMP images.

Usage:
  python -m cvidtools.convert_cinepak_bmp input.bmp output.bmp
  python -m cvidtools.convert_cinepak_bmp input.bmp output.bmp --verbose
"""

import argparse
import os
import sys
import traceback

from cvidtools.bmp import open_cinepak_bmp, write_bmp
from cvidtools.cinepak import CinepakDecoder


def extract_image_to_bmp(f, output_path, verbose=False):
    """
    Decodes the Cinepak image in `f` and writes it to `output_path`.
    Returns False if the frame did not decode cleanly; a partial image is
    still written when there is one.
    """
    info = open_cinepak_bmp(f)
    if verbose:
        print(f"Cinepak BMP {info['width']}x{info['height']}, data at {info['image_offset']}")

    decoder = CinepakDecoder(verbose=verbose)
    result = decoder.decode_image(f)
    if result.surface is None:
        print("No Cinepak frame header found")
        return False

    write_bmp(output_path, result.surface)
    return result.ok


def main(argv=None):
    parser = argparse.ArgumentParser(description="Convert Cinepak encoded BMP images to raw BMP images")
    parser.add_argument('input', help="Cinepak compressed BMP")
    parser.add_argument('output', help="Path of the raw BMP to write")
    parser.add_argument('--verbose', '-v', action='store_true', help="Trace strips and chunks")
    args = parser.parse_args(argv)

    if not os.path.exists(args.input):
        print(f"Could not open '{args.input}' for reading")
        return 1

    try:
        with open(args.input, 'rb') as f:
            ok = extract_image_to_bmp(f, args.output, verbose=args.verbose)
    except (OSError, ValueError) as e:
        print(f"Error converting {args.input}: {e}")
        if args.verbose:
            traceback.print_exc()
        return 1

    if not ok:
        print(f"Failed to decode {args.input}")
        return 1

    print(f"Saved {args.output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
