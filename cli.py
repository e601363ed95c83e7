#!/usr/bin/env python3
import argparse
import logging
import os
import sys

from PIL import Image

from detector import detect
from frames import (
    PixelArtError,
    extension_for_format,
    format_from_path,
    load_image,
    save_image,
)
from reducer import reduce_frames

logger = logging.getLogger(__name__)


class PixelArtUnscaler:
    def __init__(self, workers=1):
        self.workers = max(1, workers)

    def detect_pixel_scale(self, frames, only_analyze_first=False):
        """
        Detect how many screen pixels make up one 'art pixel'.

        Parameters:
        - frames: decoded frames of the image, all the same size
        - only_analyze_first: look at the first frame only. Much faster for
          long animations, but a blank first frame makes every block uniform
          and yields a 1x1 result.

        Returns:
        - A Detection holding the factor and the output size
        """
        analyzed = frames[:1] if only_analyze_first else frames
        detection = detect(analyzed, workers=self.workers)
        logger.info(
            "Analyzed %d of %d frame(s): factor %d",
            len(analyzed), len(frames), detection.factor,
        )
        return detection

    def downscale_frames(self, frames, scale):
        """Reduce every frame, including ones that were not analyzed, by the same scale."""
        return reduce_frames(frames, scale)

    def get_output_format(self, source_format, output_path=None):
        """
        Pick the format to write.

        The output path's extension wins, then the source format, then PNG.
        """
        if output_path:
            output_format = format_from_path(output_path)
            if output_format:
                return output_format

        Image.init()
        if source_format and source_format in Image.SAVE:
            return source_format
        return "PNG"

    def get_output_path(self, input_path, output_format, output_path=None, in_place=False):
        """
        Work out where to write the result.

        An explicit output path wins, then in-place mode, otherwise
        "{basename}.scaled.{ext}" next to the input.
        """
        if output_path:
            return output_path
        if in_place:
            return input_path

        # Strip everything after the last dot of the file name, even for dotfiles like ".png"
        directory, base = os.path.split(input_path)
        if "." in base:
            base = base.rsplit(".", 1)[0]
        return os.path.join(directory, f"{base}.scaled.{extension_for_format(output_format)}")

    def process_image(self, file_path, output_path=None, in_place=False,
                      only_analyze_first=False, analyze_only=False):
        """
        Process a single image file.

        Parameters:
        - file_path: Path to the image file
        - output_path: Where to write the result (default: derived from file_path)
        - in_place: Overwrite the input file; ignored when output_path is given
        - only_analyze_first: Detect the scale from the first frame only
        - analyze_only: Print the native size and write nothing

        Returns:
        - (detection, written_path). written_path is None when nothing was
          written, either in analyze-only mode or because no scaling was found.
        """
        decoded = load_image(file_path)
        detection = self.detect_pixel_scale(decoded.frames, only_analyze_first=only_analyze_first)

        if analyze_only:
            print(f"{detection.output_width} x {detection.output_height}")
            return detection, None

        if detection.factor <= 1:
            return detection, None

        print(f"resizing {detection.width} x {detection.height} -> "
              f"{detection.output_width} x {detection.output_height}")

        output_format = self.get_output_format(decoded.format, output_path)
        target = self.get_output_path(file_path, output_format, output_path, in_place)

        downscaled = self.downscale_frames(decoded.frames, detection.factor)
        save_image(downscaled, target, image_format=output_format, loop=decoded.loop)

        print(f"written {target}")
        return detection, target


def build_parser():
    parser = argparse.ArgumentParser(
        prog="pixel-unscale",
        description="Undo nearest-neighbor upscaling of pixel art, restoring its native resolution",
    )
    parser.add_argument('input', help='File to resize')
    parser.add_argument('output', nargs='?', default=None,
                        help='Where to write the output (default: "{basename}.scaled.{ext}")')

    # Output options
    parser.add_argument('-i', '--in-place', action='store_true',
                        help='Overwrite the original file. Ignored if an explicit output is defined')
    parser.add_argument('-a', '--analyze', action='store_true',
                        help='Only print the native "W x H" size, do not write anything')

    # Detection options
    parser.add_argument('-f', '--only-analyze-first', action='store_true',
                        help='Only analyze the first frame of an animation. This can lead to a big '
                             'speed-up, but will create a 1x1 pixel image if the first frame is blank')
    parser.add_argument('-j', '--jobs', type=int, default=1,
                        help='Number of threads used to test scale factors (default: 1)')

    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.jobs < 1:
        parser.error("--jobs must be at least 1")

    unscaler = PixelArtUnscaler(workers=args.jobs)

    try:
        detection, written = unscaler.process_image(
            args.input,
            output_path=args.output,
            in_place=args.in_place,
            only_analyze_first=args.only_analyze_first,
            analyze_only=args.analyze,
        )
    except PixelArtError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if not args.analyze and written is None:
        print("failed to detect pixel art scaling", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
