"""
Proof-of-delivery storage.

Decodes the base64 photo submitted at collection, checks it is a JPEG, PNG or
WebP image within the size limit, and writes it to local disk. The returned
path is what the COLLECTED lifecycle event records.

Environment variables:
- PROOF_UPLOAD_DIR: target directory (default uploads/proof_of_delivery)
- PROOF_MAX_BYTES: maximum decoded size in bytes (default 5 MiB)
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from pathlib import Path
from typing import Optional
from uuid import uuid4

from domain.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 5 * 1024 * 1024

_SIGNATURES = (
    (b"\xff\xd8\xff", "jpg"),
    (b"\x89PNG\r\n\x1a\n", "png"),
)


def _detect_extension(data: bytes) -> Optional[str]:
    for signature, extension in _SIGNATURES:
        if data.startswith(signature):
            return extension
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return None


def decode_photo(photo_base64: Optional[str], max_bytes: int = DEFAULT_MAX_BYTES) -> tuple[bytes, str]:
    """
    Decode and validate a base64 photo (a `data:image/...;base64,` prefix is accepted).

    Returns:
        (raw bytes, file extension)

    Raises:
        ValidationError: missing, not base64, too large, or not a supported image
    """

    if not photo_base64:
        raise ValidationError("Proof of delivery photo is required", fields={"proof_photo_base64": "required"})

    encoded = photo_base64.strip()
    if encoded.startswith("data:"):
        _, _, encoded = encoded.partition(",")

    if len(encoded) > (max_bytes * 4) // 3 + 4:
        raise ValidationError("Proof photo is too large", fields={"proof_photo_base64": f"max {max_bytes} bytes"})

    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Proof photo is not valid base64", fields={"proof_photo_base64": "invalid base64"})

    if len(data) > max_bytes:
        raise ValidationError("Proof photo is too large", fields={"proof_photo_base64": f"max {max_bytes} bytes"})

    extension = _detect_extension(data)
    if extension is None:
        raise ValidationError(
            "Proof photo must be a JPEG, PNG or WebP image",
            fields={"proof_photo_base64": "unsupported image type"},
        )
    return data, extension


class ProofStore:
    """Writes proof photos below a base directory."""

    def __init__(self, base_dir: str | Path, max_bytes: int = DEFAULT_MAX_BYTES) -> None:
        self.base_dir = Path(base_dir)
        self.max_bytes = max_bytes

    def validate(self, photo_base64: Optional[str]) -> tuple[bytes, str]:
        return decode_photo(photo_base64, self.max_bytes)

    def save(self, shipment_id: str, photo_base64: Optional[str]) -> str:
        """
        Returns:
            Path of the stored file, relative to the base directory
        """

        data, extension = self.validate(photo_base64)
        relative = Path(shipment_id) / f"{uuid4().hex}.{extension}"
        target = self.base_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("Stored proof of delivery for shipment %s (%s bytes)", shipment_id, len(data))
        return relative.as_posix()


_current_store: Optional[ProofStore] = None


def get_proof_store() -> ProofStore:
    global _current_store
    if _current_store is None:
        _current_store = ProofStore(
            base_dir=os.getenv("PROOF_UPLOAD_DIR", "uploads/proof_of_delivery"),
            max_bytes=int(os.getenv("PROOF_MAX_BYTES", str(DEFAULT_MAX_BYTES))),
        )
    return _current_store


def set_proof_store(store: ProofStore) -> None:
    global _current_store
    _current_store = store


def reset_proof_store() -> None:
    global _current_store
    _current_store = None


__all__ = [
    "DEFAULT_MAX_BYTES",
    "decode_photo",
    "ProofStore",
    "get_proof_store",
    "set_proof_store",
    "reset_proof_store",
]
