import dataclasses

import numpy as np

from frames import InvalidFactorError


def _check_factor(frame, k):
    if k < 1 or frame.width % k or frame.height % k:
        raise InvalidFactorError(f"Factor {k} does not divide a {frame.width}x{frame.height} frame")


def reduce_frame(frame, k):
    """
    Collapse every k x k block of a frame to a single pixel.

    The output pixel is the block's top-left source pixel, never a blend, so
    colors and alpha survive exactly. Frames that were not part of detection
    get the same treatment even if their blocks are not uniform.

    Parameters:
    - frame: the Frame to reduce
    - k: scale factor, must divide both dimensions

    Returns:
    - A new Frame of size (W / k, H / k) with the same duration and info
    """
    _check_factor(frame, k)
    return dataclasses.replace(frame, pixels=frame.pixels[::k, ::k])


def reduce_frames(frames, k):
    """Reduce every frame with the same factor."""
    return [reduce_frame(frame, k) for frame in frames]


def enlarge_frame(frame, k):
    """Nearest-neighbor upscale: replicate every pixel into a k x k block."""
    if k < 1:
        raise InvalidFactorError(f"Factor must be at least 1, got {k}")
    pixels = np.repeat(np.repeat(frame.pixels, k, axis=0), k, axis=1)
    return dataclasses.replace(frame, pixels=pixels)
