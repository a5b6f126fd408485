"""Photo store — turns inline image payloads into stored-blob URLs.

Raw image data never reaches the database: callers hand in whatever the
client captured (a ``data:`` URL, bare base64 or bytes) and get back a URL
under ``PHOTO_URL_PREFIX``.  Values that already are URLs pass through
untouched.
"""
import base64
import binascii
import io
import logging
import os
import re
import time
from typing import Optional, Union

import httpx
from PIL import Image, UnidentifiedImageError

from guestlist.config import settings
from guestlist.errors import ValidationError

logger = logging.getLogger(__name__)

PhotoPayload = Union[str, bytes]

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(;[\w=-]+)*;base64,(?P<data>.*)$", re.DOTALL)


def is_url(value: PhotoPayload) -> bool:
    """True when *value* is an external or already-stored photo reference."""
    if not isinstance(value, str):
        return False
    return value.startswith(("http://", "https://")) or value.startswith(settings.PHOTO_URL_PREFIX + "/")


def is_raw_payload(value: Optional[PhotoPayload]) -> bool:
    return bool(value) and not is_url(value)


def is_stored(value: Optional[PhotoPayload]) -> bool:
    return isinstance(value, str) and value.startswith(settings.PHOTO_URL_PREFIX + "/")


def require_upload(value: Optional[PhotoPayload]) -> None:
    """Refuse external URLs from unauthenticated clients; the server would fetch them later."""
    if is_url(value) and not is_stored(value):
        raise ValidationError("photo", "upload the image itself or a stored photo reference")


def decode_payload(payload: PhotoPayload) -> bytes:
    """Return the image bytes carried by a data URL, base64 string or bytes."""
    if isinstance(payload, bytes):
        return payload

    match = _DATA_URL_RE.match(payload.strip())
    encoded = match.group("data") if match else payload.strip()
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("photo", "not a valid base64 image payload")


def _normalize_image(image_bytes: bytes) -> bytes:
    """Validate, downscale and re-encode as JPEG."""
    size_mb = len(image_bytes) / (1024 * 1024)
    if size_mb > settings.MAX_UPLOAD_SIZE_MB:
        raise ValidationError("photo", f"image too large: {size_mb:.2f}MB (max {settings.MAX_UPLOAD_SIZE_MB}MB)")

    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError):
        raise ValidationError("photo", "unreadable image")

    if image.width > settings.PHOTO_MAX_WIDTH:
        ratio = settings.PHOTO_MAX_WIDTH / image.width
        image = image.resize((settings.PHOTO_MAX_WIDTH, int(image.height * ratio)), Image.LANCZOS)

    output = io.BytesIO()
    image.convert("RGB").save(output, format="JPEG", quality=90)
    return output.getvalue()


def store_photo(payload: PhotoPayload, cpf: str) -> str:
    """Persist *payload* and return its URL; URLs are returned unchanged."""
    if not payload:
        raise ValidationError("photo", "a photo is required")
    if is_url(payload):
        return payload

    jpeg = _normalize_image(decode_payload(payload))
    os.makedirs(settings.PHOTO_DIR, exist_ok=True)
    filename = f"{cpf}-{int(time.time() * 1000)}.jpg"
    with open(os.path.join(settings.PHOTO_DIR, filename), "wb") as f:
        f.write(jpeg)

    logger.info("Stored photo %s (%d bytes)", filename, len(jpeg))
    return f"{settings.PHOTO_URL_PREFIX}/{filename}"


def load_photo(url: Optional[str]) -> Optional[bytes]:
    """Fetch the bytes behind a stored or external photo URL.

    Returns None for a missing, empty or unreachable photo; the caller decides
    whether that matters.
    """
    if not url:
        return None

    if url.startswith(settings.PHOTO_URL_PREFIX + "/"):
        path = os.path.join(settings.PHOTO_DIR, os.path.basename(url))
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            logger.warning("Photo %s not readable: %s", url, e)
            return None
        return data or None

    if url.startswith(("http://", "https://")):
        try:
            response = httpx.get(url, timeout=10.0, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Photo fetch failed for %s: %s", url, e)
            return None
        return response.content or None

    logger.warning("Unsupported photo reference %s", url)
    return None
