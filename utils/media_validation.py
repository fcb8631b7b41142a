"""Validation helpers for avatar uploads and identifiers."""

import io
import os
import re

from PIL import Image, UnidentifiedImageError

from models.errors import ValidationFailure

MAX_AVATAR_BYTES = 5 * 1024 * 1024

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}

# Pillow format names accepted for pool images.
ALLOWED_IMAGE_FORMATS = {"JPEG", "PNG", "GIF", "WEBP"}

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
DEFAULT_MIME_TYPE = "application/octet-stream"

# Pillow format expected for each stored extension.
EXTENSION_FORMATS = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
    ".gif": "GIF",
    ".webp": "WEBP",
}

_SAFE_ID = re.compile(r"[A-Za-z0-9._-]+")


def split_upload_filename(filename: str) -> tuple[str, str]:
    """Return `(display_name, lower-cased extension)` for an uploaded filename.

    Directory components (either separator) sent by some browsers are dropped.
    """
    base = os.path.basename((filename or "").replace("\\", "/")).strip()
    stem, ext = os.path.splitext(base)
    return stem, ext.lower()


def mime_type_for(path: str) -> str:
    """Map a file extension onto its image MIME type."""
    return MIME_TYPES.get(os.path.splitext(path)[1].lower(), DEFAULT_MIME_TYPE)


def detect_image_format(data: bytes) -> str:
    """Return the Pillow format name of `data`.

    Raises:
        ValidationFailure: If the bytes cannot be identified as an image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            return img.format or ""
    except Image.DecompressionBombError as exc:
        raise ValidationFailure("Image dimensions are too large") from exc
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise ValidationFailure("Uploaded bytes are not a supported image") from exc


def validate_avatar_upload(filename: str, data: bytes) -> tuple[str, str]:
    """Validate an avatar upload and return `(display_name, extension)`.

    Checks the extension allow-list, the 5 MiB size limit and that the payload
    really is a JPEG, PNG, GIF or WEBP image.

    Raises:
        ValidationFailure: On any rejected input.
    """
    name, ext = split_upload_filename(filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationFailure(
            "Invalid file type. Only images are allowed.",
            {"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
        )
    if not data:
        raise ValidationFailure("No file uploaded")
    if len(data) > MAX_AVATAR_BYTES:
        raise ValidationFailure(
            "File size exceeds 5MB limit", {"size": len(data), "limit": MAX_AVATAR_BYTES}
        )
    image_format = detect_image_format(data)
    if image_format not in ALLOWED_IMAGE_FORMATS:
        raise ValidationFailure(
            f"Unsupported image format {image_format or 'unknown'}", {"format": image_format}
        )
    if EXTENSION_FORMATS[ext] != image_format:
        raise ValidationFailure(
            f"File content is {image_format}, which does not match extension {ext}",
            {"extension": ext, "format": image_format},
        )
    return name or "avatar", ext


def validate_user_id(user_id: str) -> str:
    """Ensure `user_id` can be used as a single directory name."""
    if not user_id or user_id in (".", "..") or not _SAFE_ID.fullmatch(user_id):
        raise ValidationFailure("Invalid user ID", {"user_id": user_id})
    return user_id
