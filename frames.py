import logging
import os
from dataclasses import dataclass, field

import numpy as np
from PIL import Image, ImageSequence, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Formats Pillow can write as a multi-frame animation
ANIMATED_FORMATS = {"GIF", "PNG", "WEBP"}

# Formats that cannot store an alpha channel
OPAQUE_FORMATS = {"JPEG"}

# Preferred file extension per format, used when deriving output names
FORMAT_EXTENSIONS = {
    "PNG": "png",
    "GIF": "gif",
    "WEBP": "webp",
    "JPEG": "jpg",
    "BMP": "bmp",
    "TIFF": "tiff",
}


class PixelArtError(Exception):
    """Base class for every error raised by the unscaler."""
    pass


class FrameSizeError(PixelArtError, ValueError):
    """Raised when frames are missing or do not share one size."""
    pass


class InvalidFactorError(PixelArtError, ValueError):
    """Raised when a scale factor does not evenly divide the frame."""
    pass


class ImageDecodeError(PixelArtError):
    """Raised when an image file cannot be read."""
    pass


class ImageEncodeError(PixelArtError):
    """Raised when frames cannot be written to an image file."""
    pass


@dataclass(frozen=True, eq=False)
class Frame:
    """
    One still image of a (possibly single-frame) animation.

    The pixel grid is stored as a read-only numpy array of shape (H, W) or
    (H, W, C). Two pixels are the same only if every channel matches,
    alpha included.

    Attributes:
    - pixels: the pixel grid
    - duration: display time in milliseconds, None for still images
    - info: any other per-frame metadata, carried along untouched
    """

    pixels: np.ndarray
    duration: float = None
    info: dict = field(default_factory=dict)

    def __post_init__(self):
        # Always keep private copies, pixels read-only, so frames never share state
        pixels = np.array(self.pixels)
        if pixels.ndim not in (2, 3):
            raise FrameSizeError(f"Expected a 2D or 3D pixel array, got shape {pixels.shape}")
        if pixels.shape[0] < 1 or pixels.shape[1] < 1:
            raise FrameSizeError(f"Frame must be at least 1x1, got shape {pixels.shape}")
        pixels.setflags(write=False)
        object.__setattr__(self, "pixels", pixels)
        object.__setattr__(self, "info", dict(self.info))

    @property
    def width(self):
        return self.pixels.shape[1]

    @property
    def height(self):
        return self.pixels.shape[0]

    @property
    def size(self):
        """(width, height), the same order PIL uses."""
        return self.width, self.height

    @classmethod
    def from_image(cls, img, duration=None, info=None):
        """Build a frame from a PIL image, converting it to RGBA first."""
        img = img.convert("RGBA")
        return cls(np.array(img), duration=duration, info=dict(info or {}))

    def to_image(self):
        return Image.fromarray(self.pixels)

    def __repr__(self):
        return f"Frame(size={self.width}x{self.height}, duration={self.duration})"


@dataclass
class DecodedImage:
    """
    Every frame of an image file plus the container metadata needed to
    write it back.

    Attributes:
    - frames: the decoded frames, all of the same size
    - format: Pillow format name of the source ("GIF", "PNG", ...)
    - loop: animation repeat count from the source, None if it had none
    """

    frames: list
    format: str = None
    loop: int = None

    @property
    def size(self):
        return self.frames[0].size

    @property
    def is_animated(self):
        return len(self.frames) > 1


def check_frame_sizes(frames):
    """
    Make sure there is at least one frame and all frames share one size.

    Returns:
    - The common (width, height)
    """
    if not frames:
        raise FrameSizeError("At least one frame is required")

    size = frames[0].size
    for index, frame in enumerate(frames[1:], start=1):
        if frame.size != size:
            raise FrameSizeError(
                f"Frame {index} is {frame.width}x{frame.height}, expected {size[0]}x{size[1]}"
            )
    return size


def load_image(path):
    """
    Decode an image file into RGBA frames.

    Animated GIF, APNG and WebP files yield one frame per animation step;
    everything else yields a single frame.

    Parameters:
    - path: path of the image file

    Returns:
    - A DecodedImage
    """
    try:
        with Image.open(path) as img:
            source_format = img.format
            loop = img.info.get("loop")
            frames = [
                Frame.from_image(frame, duration=frame.info.get("duration"), info=frame.info)
                for frame in ImageSequence.Iterator(img)
            ]
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise ImageDecodeError(f"Could not read {path}: {e}") from e

    check_frame_sizes(frames)
    logger.debug("Decoded %s: %d frame(s), format=%s, loop=%s", path, len(frames), source_format, loop)
    return DecodedImage(frames=frames, format=source_format, loop=loop)


def format_from_path(path):
    """Return the Pillow format name matching the file extension, or None."""
    _, ext = os.path.splitext(path)
    if not ext:
        return None
    return Image.registered_extensions().get(ext.lower())


def extension_for_format(image_format):
    """Return the file extension (without the dot) used for a Pillow format."""
    if image_format in FORMAT_EXTENSIONS:
        return FORMAT_EXTENSIONS[image_format]

    for ext, fmt in Image.registered_extensions().items():
        if fmt == image_format:
            return ext.lstrip(".")
    return image_format.lower()


def save_image(frames, path, image_format=None, loop=None):
    """
    Write frames to an image file.

    Parameters:
    - frames: frames to write, in display order
    - path: destination file
    - image_format: Pillow format name, guessed from the extension if None
    - loop: animation repeat count; 0 (forever) is used when None
    """
    check_frame_sizes(frames)
    image_format = image_format or format_from_path(path) or "PNG"

    images = [frame.to_image() for frame in frames]
    if image_format in OPAQUE_FORMATS:
        images = [img.convert("RGB") for img in images]

    params = {}
    if len(images) > 1 and image_format in ANIMATED_FORMATS:
        params["save_all"] = True
        params["append_images"] = images[1:]
        params["loop"] = 0 if loop is None else loop
        durations = [frame.duration for frame in frames]
        if all(duration is not None for duration in durations):
            params["duration"] = durations
    elif len(images) > 1:
        logger.warning("animated %s images are not supported, writing still image instead", image_format)

    try:
        images[0].save(path, format=image_format, **params)
    except (OSError, ValueError, KeyError) as e:
        raise ImageEncodeError(f"Could not write {path} as {image_format}: {e}") from e

    logger.debug("Wrote %d frame(s) to %s as %s", len(images) if params else 1, path, image_format)
    return path
