"""Base playback mode classification from MIME type and file name."""

from __future__ import annotations

from pathlib import PurePosixPath

from mediagate.schemas.stream import PlaybackMode

VIDEO_EXTENSIONS = frozenset(
    {".mp4", ".webm", ".ogv", ".mov", ".avi", ".mkv", ".flv", ".wmv", ".m4v"}
)
AUDIO_EXTENSIONS = frozenset(
    {".mp3", ".wav", ".ogg", ".oga", ".flac", ".aac", ".m4a", ".wma", ".opus"}
)


def classify_mode(mime_type: str | None, filename: str | None = None) -> PlaybackMode:
    """Video yields DIRECT; the resolver may later upgrade it to ADAPTIVE."""
    mime = (mime_type or "").split(";", 1)[0].strip().lower()

    if mime.startswith("video/"):
        return PlaybackMode.DIRECT
    if mime.startswith("audio/"):
        return PlaybackMode.AUDIO
    if mime.startswith("image/"):
        return PlaybackMode.IMAGE
    if mime == "application/pdf":
        return PlaybackMode.DOCUMENT

    # Generic, absent or unknown MIME: trust a known media suffix.
    suffix = PurePosixPath(filename or "").suffix.lower()
    if suffix in VIDEO_EXTENSIONS:
        return PlaybackMode.DIRECT
    if suffix in AUDIO_EXTENSIONS:
        return PlaybackMode.AUDIO

    return PlaybackMode.UNSUPPORTED


def is_streamable(mime_type: str | None, filename: str | None = None) -> bool:
    return classify_mode(mime_type, filename) in (PlaybackMode.DIRECT, PlaybackMode.AUDIO)
