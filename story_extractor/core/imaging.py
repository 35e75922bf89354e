"""
Post-processing applied to freshly cached images.
"""

import logging
import os
import tempfile
from pathlib import Path

from PIL import Image

logger = logging.getLogger(__name__)


def image_format_for(path: Path, fallback: str = "PNG") -> str:
    """Pillow format name matching the file extension of ``path``."""
    return Image.registered_extensions().get(path.suffix.lower(), fallback)


def crop_bottom_margin(image_path: Path, pixels: int) -> bool:
    """
    Remove a fixed band of ``pixels`` rows from the bottom of an image.

    The cropped image replaces the original atomically, encoded in the
    format its file extension names. Images no taller than the band are
    left untouched.

    Returns:
        True if the file was rewritten
    """
    if pixels <= 0:
        return False
    image_path = Path(image_path)

    with Image.open(image_path) as img:
        width, height = img.size
        if height <= pixels:
            return False
        fmt = image_format_for(image_path, fallback=img.format or "PNG")
        cropped = img.crop((0, 0, width, height - pixels))
        cropped.load()

    if fmt == "JPEG" and cropped.mode not in ("RGB", "L"):
        cropped = cropped.convert("RGB")

    fd, tmp_name = tempfile.mkstemp(dir=image_path.parent, suffix=".part")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        cropped.save(tmp_path, fmt, optimize=True)
        os.replace(tmp_path, image_path)
    finally:
        tmp_path.unlink(missing_ok=True)

    logger.info("Removed watermark from %s (cropped %dpx)", image_path.name, pixels)
    return True
