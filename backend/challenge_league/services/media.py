from __future__ import annotations
from datetime import datetime, timezone as dt_tz
from typing import Any
from PIL import Image, UnidentifiedImageError
import piexif
import io
import structlog

log = structlog.get_logger()

FORMAT_TO_MIME = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}
EXT_FOR_MIME = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}

def sniff_mime(data: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return FORMAT_TO_MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError):
        return None

def analyze_image(data: bytes, max_bytes: int) -> tuple[str, dict]:
    """
    Returns (mime, exif_dict_or_empty).
    Raises ValueError for empty, oversized, unsupported or corrupt images.
    """
    if not data:
        raise ValueError("Empty upload")
    if len(data) > max_bytes:
        raise ValueError(f"Image too large (max {max_bytes // (1024 * 1024)} MB)")
    mime = sniff_mime(data)
    if mime is None:
        raise ValueError("Unsupported image type (JPEG, PNG or WEBP only)")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()  # basic integrity
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValueError("Invalid image file")
    exif: dict = {}
    if mime in ("image/jpeg", "image/webp"):
        try:
            exif = piexif.load(data)
        except Exception:
            # Unreadable EXIF is not a reason to reject the photo
            log.info("media.exif_unreadable", mime=mime)
            exif = {}
    return mime, exif

def _exif_value(exif: dict, ifd: str, tag: int) -> Any:
    return (exif.get(ifd) or {}).get(tag)

def photo_taken_at(exif: dict) -> datetime | None:
    # DateTimeOriginal (Exif IFD), falling back to DateTime (0th IFD); "YYYY:MM:DD HH:MM:SS"
    raw = _exif_value(exif, "Exif", piexif.ExifIFD.DateTimeOriginal) or _exif_value(exif, "0th", piexif.ImageIFD.DateTime)
    if isinstance(raw, bytes):
        raw = raw.decode(errors="ignore")
    if not isinstance(raw, str):
        return None
    s = raw.replace("\x00", "").strip()
    try:
        # Cameras store local wall-clock time with no zone; read it as UTC
        return datetime.strptime(s[:19], "%Y:%m:%d %H:%M:%S").replace(tzinfo=dt_tz.utc)
    except ValueError:
        return None

def ext_for_mime(mime: str) -> str:
    return EXT_FOR_MIME.get(mime, "bin")
