"""
payload.py — Rebuild question images split across HSC_BASE64_<n> columns.

Spreadsheet cells cap out well below the size of a screenshot, so images are
stored base64-encoded and spread over numbered columns. Reconstruction is done
on demand, one question at a time, with hard limits on chunk size, total size
and chunk count. Results are never cached.
"""

import base64
import binascii
import logging
import re
from typing import Any, List, Mapping, Optional, Tuple

from core.models import CHUNK_FIELD_PREFIX, ItemRecord

logger = logging.getLogger(__name__)

CHUNK_FIELD_PATTERN = re.compile(re.escape(CHUNK_FIELD_PREFIX) + r"([0-9]+)")

MAX_CHUNK_CHARS = 500 * 1024
MAX_PAYLOAD_CHARS = 50 * 1024 * 1024
MAX_CHUNKS = 200

IMAGE_DATA_PREFIX = "data:image"
PNG_DATA_PREFIX = "data:image/png;base64,"


def chunk_fields(fields: Mapping[str, Any]) -> List[Tuple[int, str]]:
    """
    (index, field_name) pairs for chunk fields, sorted by numeric suffix.

    Only names made of the prefix followed by digits count; anything else
    (e.g. HSC_BASE64_extra) is ignored.
    """
    found = []
    for name in fields:
        match = CHUNK_FIELD_PATTERN.fullmatch(str(name))
        if match:
            found.append((int(match.group(1)), name))
    found.sort(key=lambda pair: pair[0])
    return found


def _chunk_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    return str(value).strip()


def reconstruct_payload(record: ItemRecord) -> Optional[str]:
    """
    Concatenate a record's image chunks into a data URI.

    Returns None when no chunk survives the size limits. Oversized chunks
    are skipped; once the running total would pass MAX_PAYLOAD_CHARS the
    remaining chunks are dropped.
    """
    label = record.item_label
    fields = chunk_fields(record.payload_fields)
    if not fields:
        return None

    if len(fields) > MAX_CHUNKS:
        logger.warning(
            "Question %s has %d image chunks; only the first %d are used.",
            label, len(fields), MAX_CHUNKS,
        )
    fields = fields[:MAX_CHUNKS]

    parts = []
    total = 0
    for _, name in fields:
        text = _chunk_text(record.payload_fields.get(name))
        if not text:
            continue

        if len(text) > MAX_CHUNK_CHARS:
            logger.warning(
                "Chunk %s for question %s is too large (%dKB). Skipping.",
                name, label, len(text) // 1024,
            )
            continue

        if total + len(text) > MAX_PAYLOAD_CHARS:
            logger.warning(
                "Image for question %s exceeds %dMB limit. Truncating at %s.",
                label, MAX_PAYLOAD_CHARS // (1024 * 1024), name,
            )
            break

        total += len(text)
        parts.append(text)

    if not parts:
        logger.warning("No valid image chunks found for question %s", label)
        return None

    payload = "".join(parts)
    if not payload.startswith(IMAGE_DATA_PREFIX):
        payload = PNG_DATA_PREFIX + payload

    logger.debug(
        "Reconstructed image for question %s (%dKB from %d chunks)",
        label, total // 1024, len(parts),
    )
    return payload


def decode_payload(data_uri: str) -> bytes:
    """Decode a base64 data URI into raw image bytes."""
    encoded = data_uri
    if data_uri.startswith("data:"):
        header, sep, encoded = data_uri.partition(",")
        if not sep or ";base64" not in header:
            raise ValueError("Image data is not a base64 data URI.")
    try:
        return base64.b64decode("".join(encoded.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e
