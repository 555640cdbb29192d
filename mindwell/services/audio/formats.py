"""
Audio container negotiation and MIME normalisation.

The client probes an ordered list of preferred containers once, when a
recording starts, and carries the chosen ``AudioContainer`` with the blob so
no later stage has to sniff the format again. The server normalises the
declared MIME type of uploads across device families (browsers, iOS, desktop)
before accepting them.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import soundfile as sf

from mindwell.core.exceptions import NoSupportedContainerError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioContainer:
    """An encodable audio container/codec pair."""

    mime_type: str
    extension: str
    sf_format: str
    sf_subtype: str

    @property
    def label(self) -> str:
        return f"{self.sf_format}/{self.sf_subtype}"


OGG_OPUS = AudioContainer("audio/ogg", ".ogg", "OGG", "OPUS")
OGG_VORBIS = AudioContainer("audio/ogg", ".ogg", "OGG", "VORBIS")
FLAC = AudioContainer("audio/flac", ".flac", "FLAC", "PCM_16")
WAV_PCM16 = AudioContainer("audio/wav", ".wav", "WAV", "PCM_16")

# Compressed first; WAV is the universally available fallback.
PREFERRED_CONTAINERS: tuple[AudioContainer, ...] = (OGG_OPUS, OGG_VORBIS, FLAC, WAV_PCM16)

# MIME types the processing pipeline accepts, with the extension used on disk.
ACCEPTED_MIME_TYPES: dict[str, str] = {
    "audio/webm": ".webm",
    "audio/mp4": ".m4a",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "audio/ogg": ".ogg",
    "audio/flac": ".flac",
}

_MIME_ALIASES: dict[str, str] = {
    "audio/x-wav": "audio/wav",
    "audio/wave": "audio/wav",
    "audio/vnd.wave": "audio/wav",
    "audio/mp3": "audio/mpeg",
    "audio/x-m4a": "audio/mp4",
    "audio/m4a": "audio/mp4",
    "audio/aac": "audio/mp4",
    "audio/x-aac": "audio/mp4",
    "video/mp4": "audio/mp4",
    "video/webm": "audio/webm",
    "audio/x-flac": "audio/flac",
    "application/ogg": "audio/ogg",
    "audio/opus": "audio/ogg",
}

_EXTENSION_MIME: dict[str, str] = {
    ".webm": "audio/webm",
    ".m4a": "audio/mp4",
    ".mp4": "audio/mp4",
    ".aac": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".opus": "audio/ogg",
    ".flac": "audio/flac",
}


def normalize_mime(mime_type: str | None, filename: str | None = None) -> str:
    """Return the canonical MIME type for a declared container.

    Codec parameters (``audio/webm;codecs=opus``) are dropped and vendor
    aliases folded. When the declared type is missing or generic
    (``application/octet-stream``) the filename extension decides.
    Returns ``""`` when nothing can be inferred.
    """
    base = (mime_type or "").split(";", 1)[0].strip().lower()
    base = _MIME_ALIASES.get(base, base)
    if base and base != "application/octet-stream":
        return base

    if filename and "." in filename:
        ext = "." + filename.rsplit(".", 1)[1].lower()
        return _EXTENSION_MIME.get(ext, "")
    return ""


def extension_for(mime_type: str) -> str:
    """Return the on-disk extension for an accepted MIME type (``.bin`` otherwise)."""
    return ACCEPTED_MIME_TYPES.get(normalize_mime(mime_type), ".bin")


def is_accepted(mime_type: str) -> bool:
    return normalize_mime(mime_type) in ACCEPTED_MIME_TYPES


def soundfile_supports(container: AudioContainer) -> bool:
    """Check whether the installed libsndfile can write ``container``."""
    formats = sf.available_formats()
    if container.sf_format not in formats:
        return False
    return container.sf_subtype in sf.available_subtypes(container.sf_format)


def probe_container(
    candidates: Sequence[AudioContainer] = PREFERRED_CONTAINERS,
    is_supported: Callable[[AudioContainer], bool] | None = None,
) -> AudioContainer:
    """Select the first container the runtime can encode.

    Args:
        candidates: Containers in order of preference.
        is_supported: Capability check; defaults to probing libsndfile.

    Raises:
        NoSupportedContainerError: If none of the candidates is usable.
    """
    check = is_supported or soundfile_supports
    for container in candidates:
        if check(container):
            logger.debug("Selected audio container %s", container.label)
            return container
        logger.debug("Audio container %s not supported at runtime", container.label)

    raise NoSupportedContainerError([c.label for c in candidates])
