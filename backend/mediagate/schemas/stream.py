"""Playback decision shared by the resolver and player components."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class PlaybackMode(str, Enum):
    ADAPTIVE = "adaptive"
    DIRECT = "direct"
    AUDIO = "audio"
    IMAGE = "image"
    DOCUMENT = "document"
    UNSUPPORTED = "unsupported"


class StreamDescriptor(BaseModel):
    """The single resolved playback decision for one preview session.

    Frozen: a retry produces a new descriptor instead of patching this one.
    """

    model_config = ConfigDict(frozen=True)

    mode: PlaybackMode
    primary_url: str = ""
    fallback_url: Optional[str] = None
    origin_online: bool = False

    @model_validator(mode="after")
    def _require_url(self) -> "StreamDescriptor":
        if self.mode != PlaybackMode.UNSUPPORTED and not self.primary_url:
            raise ValueError(f"{self.mode.value} descriptor requires a primary URL")
        return self
