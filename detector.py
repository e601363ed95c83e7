import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np

from frames import Frame, FrameSizeError, InvalidFactorError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    """
    Result of a detection run.

    Attributes:
    - factor: the largest integer scale shared by every analyzed frame (1 = native)
    - width, height: size of the analyzed frames
    """

    factor: int
    width: int
    height: int

    @property
    def output_width(self):
        return self.width // self.factor

    @property
    def output_height(self):
        return self.height // self.factor

    @property
    def output_size(self):
        return self.output_width, self.output_height


def candidate_factors(width, height):
    """Yield every factor dividing both dimensions, largest first."""
    for k in range(min(width, height), 0, -1):
        if width % k == 0 and height % k == 0:
            yield k


def _as_pixels(frame):
    if isinstance(frame, Frame):
        return frame.pixels
    return np.asarray(frame)


def is_uniform(frame, k):
    """
    Check whether every k x k block on the k-aligned grid is a single color.

    Each block is compared against its own top-left pixel with exact
    equality on all channels. Scanning stops at the first row of blocks
    that contains a mismatch.

    Parameters:
    - frame: a Frame or a raw (H, W[, C]) pixel array
    - k: block size, must divide both dimensions

    Returns:
    - True if the frame could have been produced by replicating each pixel k times
    """
    pixels = _as_pixels(frame)
    height, width = pixels.shape[:2]
    if k < 1 or width % k or height % k:
        raise InvalidFactorError(f"Factor {k} does not divide a {width}x{height} frame")
    if k == 1:
        return True

    # (rows of blocks, k, columns of blocks, k, channels...)
    blocks = pixels.reshape(height // k, k, width // k, k, *pixels.shape[2:])
    for block_row in blocks:
        corners = block_row[:1, :, :1]
        if not np.array_equal(np.broadcast_to(corners, block_row.shape), block_row):
            return False
    return True


def _check_frames(frames):
    """Return the pixel arrays of frames after checking they can be compared."""
    grids = [_as_pixels(frame) for frame in frames]
    if not grids:
        raise FrameSizeError("At least one frame is required for detection")

    shape = grids[0].shape[:2]
    for index, grid in enumerate(grids[1:], start=1):
        if grid.shape[:2] != shape:
            raise FrameSizeError(
                f"Frame {index} is {grid.shape[1]}x{grid.shape[0]}, expected {shape[1]}x{shape[0]}"
            )
    return grids


def _accepts(grids, k):
    for index, grid in enumerate(grids):
        if not is_uniform(grid, k):
            logger.debug("Factor %d rejected by frame %d", k, index)
            return False
    return True


def _scan(grids, candidates):
    for k in candidates:
        if _accepts(grids, k):
            return k
    return 1


def _scan_parallel(grids, candidates, workers):
    # Candidates are checked speculatively, but answers are read back in
    # descending order so the result matches the sequential scan
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(_accepts, grids, k) for k in candidates]
        try:
            for k, future in zip(candidates, futures):
                if future.result():
                    return k
        finally:
            for future in futures:
                future.cancel()
    return 1


def detect_factor(frames, workers=1):
    """
    Find the largest factor k at which every frame is uniform.

    Candidates are tried from min(W, H) downwards, skipping those that do
    not divide both dimensions. A flat single-color frame is uniform at
    every candidate, so on its own it reports min(W, H).

    Parameters:
    - frames: non-empty sequence of same-sized Frames or pixel arrays
    - workers: number of threads used to evaluate candidates

    Returns:
    - The factor, 1 when the frames are already at native resolution
    """
    grids = _check_frames(frames)
    height, width = grids[0].shape[:2]

    candidates = [k for k in candidate_factors(width, height) if k > 1]
    if workers > 1 and len(candidates) > 1:
        factor = _scan_parallel(grids, candidates, workers)
    else:
        factor = _scan(grids, candidates)

    logger.debug("Detected factor %d for %d frame(s) of %dx%d", factor, len(grids), width, height)
    return factor


def detect(frames, workers=1):
    """Run detect_factor and return it with the resulting output size."""
    frames = list(frames)
    factor = detect_factor(frames, workers=workers)
    height, width = _as_pixels(frames[0]).shape[:2]
    return Detection(factor=factor, width=width, height=height)
