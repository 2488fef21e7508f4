from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Union

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# EXIF 0th IFD ImageDescription
EXIF_IMAGE_DESCRIPTION = 0x010E

FORMATS = {
    "png": ("PNG", "image/png"),
    "jpeg": ("JPEG", "image/jpeg"),
    "jpg": ("JPEG", "image/jpeg"),
    "webp": ("WEBP", "image/webp"),
}


class ImageLoadError(ValueError):
    pass


def load_image_rgba(source: Union[str, Path, bytes]) -> Image.Image:
    try:
        if isinstance(source, (bytes, bytearray)):
            img = Image.open(io.BytesIO(source))
        else:
            img = Image.open(source)
        img.load()
    except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as e:
        raise ImageLoadError(f"Failed to load image: {e}") from e
    if img.width <= 0 or img.height <= 0:
        raise ImageLoadError("Image has no pixels")
    # Convert to RGBA for consistent alpha work
    return img.convert("RGBA")


def mime_type_for(fmt: str) -> str:
    return FORMATS[_norm_format(fmt)][1]


def _norm_format(fmt: str) -> str:
    key = fmt.strip().lower().lstrip(".")
    if key.startswith("image/"):
        key = key[len("image/"):]
    if key not in FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")
    return key


def _flatten_on_white(img_rgba: Image.Image) -> Image.Image:
    img_rgba = img_rgba.convert("RGBA")
    flat = Image.new("RGB", img_rgba.size, (255, 255, 255))
    flat.paste(img_rgba, mask=img_rgba.split()[3])
    return flat


def _comment_exif(comment: str) -> bytes:
    exif = Image.Exif()
    exif[EXIF_IMAGE_DESCRIPTION] = comment
    return exif.tobytes()


def encode_image(
    img_rgba: Image.Image,
    fmt: str = "png",
    quality: int = 92,
    comment: str = "",
) -> bytes:
    """
    Encode for download. PNG keeps alpha; JPEG has no alpha, so it is
    flattened onto white and may carry ``comment`` as EXIF ImageDescription.
    """
    key = _norm_format(fmt)
    pil_format = FORMATS[key][0]
    q = max(1, min(100, int(quality)))
    buf = io.BytesIO()

    if pil_format == "JPEG":
        flat = _flatten_on_white(img_rgba)
        exif = None
        if comment.strip():
            try:
                exif = _comment_exif(comment)
            except (ValueError, TypeError, UnicodeError) as e:
                # Metadata is optional; export without it
                logger.warning("Failed to write EXIF comment: %s", e)
        if exif:
            flat.save(buf, format="JPEG", quality=q, exif=exif)
        else:
            flat.save(buf, format="JPEG", quality=q)
    elif pil_format == "WEBP":
        img_rgba.convert("RGBA").save(buf, format="WEBP", quality=q)
    else:
        img_rgba.convert("RGBA").save(buf, format="PNG")
    return buf.getvalue()


def save_image(path: str, img_rgba: Image.Image, quality: int = 92, comment: str = "") -> None:
    ext = Path(path).suffix.lower() or ".png"
    data = encode_image(img_rgba, ext, quality=quality, comment=comment)
    Path(path).write_bytes(data)
    logger.info("saved %s (%d bytes)", path, len(data))
