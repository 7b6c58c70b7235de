#!/usr/bin/env python3
"""Decode the Cinepak video track of a Sega FILM (.CPK) file to image frames.

Usage:
  python -m cvidtools.cpk_extract MOVIE.CPK -o output/movie/
  python -m cvidtools.cpk_extract MOVIE.CPK -o output/movie/ --start 100 --count 10 --format bmp
"""

import argparse
import os
import sys
import traceback

from cvidtools.bmp import write_bmp
from cvidtools.cinepak import CinepakDecoder
from cvidtools.film import SegaFilmParser, detect_skip_bytes


def extract_frames(film, output_dir, fmt='png', start=0, count=None, verbose=False):
    """
    Decodes every video sample in order and saves frames [start, start+count).
    Earlier frames are still decoded since later ones only carry changes.
    Returns the list of written paths.
    """
    if film.header.get('codec') != 'cvid':
        raise ValueError(f"Unsupported video codec {film.header.get('codec')!r}")

    stop = None if count is None else start + count
    decoder = None
    saved = []

    for v_idx, sample in enumerate(film.video_samples()):
        if stop is not None and v_idx >= stop:
            break

        if decoder is None:
            skip = detect_skip_bytes(sample)
            if verbose:
                print(f"Frame header padding: {skip} bytes")
            decoder = CinepakDecoder(skip_bytes=skip, verbose=verbose)

        result = decoder.decode_frame(sample)
        if not result.ok:
            print(f"Error decoding frame {v_idx}")

        if v_idx >= start and result.surface is not None:
            path = os.path.join(output_dir, f"frame_{v_idx:04d}.{fmt}")
            if fmt == 'bmp':
                write_bmp(path, result.surface)
            else:
                result.to_image().save(path)
            saved.append(path)

        if (v_idx + 1) % 100 == 0:
            print(f"Processed {v_idx + 1} frames...")

    return saved


def main(argv=None):
    parser = argparse.ArgumentParser(description="Extract Cinepak video frames from a Sega FILM file")
    parser.add_argument('input', help="Sega FILM / CPK file")
    parser.add_argument('--output', '-o', help="Output directory", default="output")
    parser.add_argument('--start', type=int, default=0, help="First frame to save")
    parser.add_argument('--count', type=int, help="Number of frames to save")
    parser.add_argument('--format', choices=['png', 'bmp'], default='png')
    parser.add_argument('--verbose', '-v', action='store_true', help="Trace strips and chunks")
    args = parser.parse_args(argv)

    if not os.path.exists(args.input):
        print(f"File not found: {args.input}")
        return 1

    os.makedirs(args.output, exist_ok=True)

    with open(args.input, 'rb') as f:
        file_data = f.read()

    try:
        film = SegaFilmParser(file_data)
        print(f"Parsed FILM: {film.header}")
        saved = extract_frames(film, args.output, fmt=args.format, start=args.start,
                               count=args.count, verbose=args.verbose)
    except (OSError, ValueError) as e:
        print(f"Failed to extract {args.input}: {e}")
        if args.verbose:
            traceback.print_exc()
        return 1

    print(f"Saved {len(saved)} video frames to {args.output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
