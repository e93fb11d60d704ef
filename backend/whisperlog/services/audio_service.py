"""
WhisperLog Backend — Audio Payload Service
============================================

What:  Decodes base64 voice notes, validates them, and decides how the
       original recording is kept at rest.
Why:   Audio arrives as a JSON string (the mobile client records m4a/mp4 and
       sends `data:audio/mp4;base64,...`). Every adapter needs raw bytes plus a
       MIME type, and the orchestrator must reject bad payloads before any
       vendor call is made.
How:   strip_data_uri() → base64 decode → size check → AudioPayload.
       AudioStorageService applies the configured at-rest mode after a
       successful run.

At-rest modes:
    inline  The base64 string is stored as submitted (default).
    redact  Only a marker with size and MIME type is stored.
    file    Decoded bytes go to storage_root/YYYY/MM/DD/<uuid><ext> and the
            record keeps a `file://` reference relative to storage_root.
"""

import base64
import binascii
import logging
import os
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import aiofiles

from whisperlog.config import settings
from whisperlog.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

# ── Known Audio Types ─────────────────────────────────────────────────────
# MIME type → file extension used for transcription uploads and file storage
KNOWN_AUDIO_MIME_TYPES = {
    "audio/mp4": ".mp4",
    "audio/m4a": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/aac": ".aac",
}

# Unprefixed payloads come from the mobile recorder, which writes mp4
DEFAULT_AUDIO_MIME_TYPE = "audio/mp4"

# data:<mime>[;param=value...];base64,
DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>[A-Za-z0-9.+-]+/[A-Za-z0-9.+-]+)(?:;[A-Za-z0-9.+-]+=[A-Za-z0-9.+-]+)*;base64,",
    re.IGNORECASE,
)

FILE_REFERENCE_PREFIX = "file://"


@dataclass(frozen=True)
class AudioPayload:
    """Decoded audio ready to hand to a provider."""

    data: bytes
    mime_type: str
    extension: str

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def filename(self) -> str:
        return f"voice_note{self.extension}"


def strip_data_uri(content: str) -> Tuple[str, str]:
    """
    Split an optional data-URI prefix from a base64 payload.

    Returns:
        (mime_type, base64_body). Unprefixed content is assumed to be audio/mp4.

    Raises:
        ValidationError: the prefix names a MIME type that is not known audio.
    """
    content = content.strip()
    match = DATA_URI_PATTERN.match(content)
    if match is None:
        if content.startswith("data:"):
            raise ValidationError(
                message="Malformed data URI. Expected 'data:<audio type>;base64,<data>'.",
                field="content",
            )
        return DEFAULT_AUDIO_MIME_TYPE, content

    mime_type = match.group("mime").lower()
    if mime_type not in KNOWN_AUDIO_MIME_TYPES:
        raise ValidationError(
            message=f"Audio type '{mime_type}' is not supported.",
            field="content",
            context={"allowed": sorted(KNOWN_AUDIO_MIME_TYPES)},
        )
    return mime_type, content[match.end():]


def decode_audio(content: str, max_size: Optional[int] = None) -> AudioPayload:
    """
    Decode and validate a base64 audio payload.

    Raises:
        ValidationError: bad prefix, invalid base64, empty audio, or too large.
    """
    limit = max_size if max_size is not None else settings.max_audio_size
    mime_type, body = strip_data_uri(content)
    body = "".join(body.split())

    try:
        data = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(
            message="Audio content is not valid base64.",
            field="content",
        )

    if not data:
        raise ValidationError(message="Audio content is empty.", field="content")

    if len(data) > limit:
        raise ValidationError(
            message=(
                f"Audio size ({len(data) / (1024 * 1024):.1f}MB) exceeds maximum of "
                f"{limit / (1024 * 1024):.0f}MB."
            ),
            field="content",
            context={"max_size": limit, "actual_size": len(data)},
        )

    return AudioPayload(
        data=data,
        mime_type=mime_type,
        extension=KNOWN_AUDIO_MIME_TYPES[mime_type],
    )


class AudioStorageService:
    """
    Applies the configured at-rest policy for submitted recordings.

    Built once by the application factory; holds only immutable settings.
    """

    def __init__(
        self,
        storage_root: Optional[str] = None,
        mode: Optional[str] = None,
        max_size: Optional[int] = None,
    ):
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.mode = mode or settings.audio_storage_mode
        self.max_size = max_size if max_size is not None else settings.max_audio_size

    def decode(self, content: str) -> AudioPayload:
        return decode_audio(content, self.max_size)

    def _generate_storage_path(self, extension: str) -> Tuple[Path, str]:
        """YYYY/MM/DD/<uuid><ext>, returned as (absolute, relative)."""
        now = datetime.now(timezone.utc)
        relative_path = f"{now:%Y/%m/%d}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    async def store_file(self, payload: AudioPayload) -> str:
        """Write decoded audio to disk and return its path relative to storage_root."""
        absolute_path, relative_path = self._generate_storage_path(payload.extension)
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(payload.data)
        except OSError as e:
            logger.error("Failed to store audio at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save the submitted recording. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            )
        logger.info("Audio stored: %s (%d bytes)", relative_path, payload.size)
        return relative_path

    async def prepare_original_content(self, content: str, payload: AudioPayload) -> str:
        """Return the value to persist as `original_content` for an audio record."""
        if self.mode == "redact":
            return f"[audio redacted: {payload.size} bytes, {payload.mime_type}]"
        if self.mode == "file":
            relative_path = await self.store_file(payload)
            return f"{FILE_REFERENCE_PREFIX}{relative_path}"
        return content

    async def cleanup_file(self, reference: str) -> None:
        """
        Remove a stored recording (best effort).

        Used when the database write fails after the file was written; a
        leftover file is logged, never raised.
        """
        if not reference.startswith(FILE_REFERENCE_PREFIX):
            return
        path = (self.storage_root / reference[len(FILE_REFERENCE_PREFIX):]).resolve()
        if self.storage_root not in path.parents:
            logger.warning("Refusing to clean up path outside storage root: %s", path)
            return
        try:
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up audio file: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up audio file %s: %s", path, str(e))
