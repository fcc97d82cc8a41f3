"""
images.py - Re-encoding of embedded image XObjects.

Supports:
- Downsampling to the policy's target size (cv2 INTER_AREA)
- JPEG output (DCTDecode) for RGB and grayscale images
- Grayscale conversion for effectively-gray RGB images

Masks, palette/CMYK/16-bit images and images with /Decode arrays are
left alone: a lossy JPEG round trip would change how they render.
"""

import io
import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Set, Tuple

import cv2
import numpy as np
import pikepdf
from PIL import Image
from pikepdf import Array, Dictionary, Name, Stream

from .graph import primary_filter, resolve_dictionary
from .models import CompressionOptions
from .policy import decide_transform, jpeg_quality
from .pruning import delete_if_present

logger = logging.getLogger(__name__)

# Saturation threshold for grayscale conversion
# Only convert to grayscale if mean saturation is below this
GRAYSCALE_SATURATION_THRESHOLD = 10  # Out of 255

SKIPPED = "skipped"
UNCHANGED = "unchanged"
RECOMPRESSED = "recompressed"


@dataclass
class ImageReport:
    """What happened to one image XObject."""
    name: str
    outcome: str
    original_size: int = 0
    new_size: int = 0
    width: int = 0
    height: int = 0
    new_width: int = 0
    new_height: int = 0
    reason: Optional[str] = None

    @property
    def bytes_saved(self) -> int:
        if self.outcome != RECOMPRESSED:
            return 0
        return self.original_size - self.new_size


def is_grayscale_image(image: np.ndarray) -> bool:
    """
    True if decoded image XObject pixels carry no real color.

    RGB images stored for scanned or gray artwork often have three equal
    channels; those are written back as one-channel JPEG data. Decided on
    the mean HSV saturation over the whole image.
    """
    if len(image.shape) != 3 or image.shape[2] != 3:
        return True  # single channel

    hsv = cv2.cvtColor(image, cv2.COLOR_RGB2HSV)
    mean_saturation = np.mean(hsv[:, :, 1])

    is_gray = mean_saturation < GRAYSCALE_SATURATION_THRESHOLD
    logger.debug(f"Mean saturation: {mean_saturation:.1f}, is_grayscale: {is_gray}")

    return is_gray


def iter_image_xobjects(
    resources: Dictionary,
    seen: Optional[Set[Tuple[int, int]]] = None
) -> Iterator[Tuple[str, Stream]]:
    """
    Yield (name, stream) for every image XObject reachable from *resources*.

    Form XObjects are descended into. Each indirect object is yielded at
    most once per *seen* set, so images shared between pages are only
    processed once.
    """
    if seen is None:
        seen = set()

    xobjects = resolve_dictionary(resources.get(Name.XObject))
    if xobjects is None:
        return

    for name in list(xobjects.keys()):
        obj = xobjects.get(name)
        if not isinstance(obj, Stream):
            continue
        if obj.is_indirect:
            if obj.objgen in seen:
                continue
            seen.add(obj.objgen)

        subtype = obj.get(Name.Subtype)
        if subtype == Name.Image:
            yield str(name), obj
        elif subtype == Name.Form:
            nested = resolve_dictionary(obj.get(Name.Resources))
            if nested is not None:
                yield from iter_image_xobjects(nested, seen)


def unsupported_reason(stream: Stream) -> Optional[str]:
    """Why *stream* cannot safely go through a JPEG round trip (None if it can)."""
    if stream.get(Name.ImageMask, False):
        return "stencil mask"
    if isinstance(stream.get(Name.Mask), Array):
        return "color key mask"
    if Name.Decode in stream:
        return "decode array"
    if stream.get(Name.SMaskInData, 0):
        return "alpha in JPX data"
    bits = stream.get(Name.BitsPerComponent)
    if bits is not None and int(bits) != 8:
        return f"{int(bits)}-bit samples"
    return None


def resample(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize to exactly width x height."""
    if image.shape[1] == width and image.shape[0] == height:
        return image
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)


def encode_jpeg(
    image: np.ndarray,
    quality: int,
    preserve_quality: bool = False
) -> Tuple[bytes, bool]:
    """
    Compress image as JPEG.

    Args:
        image: RGB or grayscale numpy array
        quality: JPEG quality (1-100, lower = smaller)
        preserve_quality: Keep color and full chroma resolution

    Returns:
        (jpeg_bytes, is_color)
    """
    is_color = len(image.shape) == 3

    if is_color and not preserve_quality and is_grayscale_image(image):
        # Convert to grayscale since it's effectively gray anyway
        image = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
        is_color = False

    img = Image.fromarray(np.ascontiguousarray(image))

    buffer = io.BytesIO()
    img.save(
        buffer,
        format="JPEG",
        quality=quality,
        optimize=True,
        subsampling=0 if preserve_quality else 2  # 4:4:4 or 4:2:0
    )

    return buffer.getvalue(), is_color


_DEVICE_COMPONENTS = {
    "/DeviceRGB": 3,
    "/DeviceGray": 1,
    "/CalRGB": 3,
    "/CalGray": 1,
}


def colorspace_components(colorspace) -> Optional[int]:
    """Number of color components of an RGB or gray color space, None for anything else."""
    if isinstance(colorspace, Name):
        return _DEVICE_COMPONENTS.get(str(colorspace))
    if not isinstance(colorspace, Array) or len(colorspace) == 0:
        return None

    family = colorspace[0]
    if family == Name.ICCBased and len(colorspace) > 1 and isinstance(colorspace[1], Stream):
        n = colorspace[1].get(Name.N)
        return int(n) if n is not None else None
    return _DEVICE_COMPONENTS.get(str(family))


def output_colorspace(original, is_color: bool):
    """
    Color space for the re-encoded data.

    The source color space (and any ICC profile it carries) is kept when
    its component count still matches; grayscale collapse falls back to
    /DeviceGray.
    """
    if original is not None and colorspace_components(original) == (3 if is_color else 1):
        return original
    return Name.DeviceRGB if is_color else Name.DeviceGray


def _decode(stream: Stream) -> Optional[np.ndarray]:
    pil = pikepdf.PdfImage(stream).as_pil_image()
    if pil.mode not in ("RGB", "L"):
        logger.debug(f"Unsupported decoded mode {pil.mode}")
        return None
    return np.asarray(pil)


def recompress_image(
    stream: Stream,
    options: CompressionOptions,
    name: str = ""
) -> ImageReport:
    """
    Downsample and re-encode one image XObject in place.

    The stream is only rewritten when the new JPEG is smaller than the
    current payload.

    Returns:
        ImageReport describing the outcome
    """
    width = int(stream.get(Name.Width, 0))
    height = int(stream.get(Name.Height, 0))
    filter_name = primary_filter(stream)
    original_size = len(stream.read_raw_bytes())

    report = ImageReport(
        name=name,
        outcome=SKIPPED,
        original_size=original_size,
        new_size=original_size,
        width=width,
        height=height,
        new_width=width,
        new_height=height,
    )

    decision = decide_transform(width, height, filter_name, options)
    if decision.skip:
        report.reason = decision.skip_reason
        return report

    reason = unsupported_reason(stream)
    if reason:
        report.reason = reason
        return report

    pixels = _decode(stream)
    if pixels is None:
        report.reason = "unsupported color mode"
        return report

    resized = resample(pixels, decision.target_width, decision.target_height)
    jpeg_data, is_color = encode_jpeg(
        resized,
        quality=jpeg_quality(options),
        preserve_quality=options.preserve_quality
    )

    if len(jpeg_data) >= original_size:
        report.outcome = UNCHANGED
        report.reason = "re-encoded data not smaller"
        logger.debug(
            f"Image {name}: kept original ({original_size:,} bytes <= {len(jpeg_data):,} bytes)"
        )
        return report

    colorspace = output_colorspace(stream.get(Name.ColorSpace), is_color)

    stream.write(jpeg_data, filter=Name.DCTDecode)
    delete_if_present(stream, "/DecodeParms")
    stream[Name.Width] = decision.target_width
    stream[Name.Height] = decision.target_height
    stream[Name.ColorSpace] = colorspace
    stream[Name.BitsPerComponent] = 8

    report.outcome = RECOMPRESSED
    report.new_size = len(jpeg_data)
    report.new_width = decision.target_width
    report.new_height = decision.target_height

    logger.info(
        f"Image {name}: {original_size:,} -> {len(jpeg_data):,} bytes | "
        f"{width}x{height} -> {decision.target_width}x{decision.target_height} | "
        f"{filter_name or 'raw'} -> /DCTDecode | color={is_color}"
    )
    return report
