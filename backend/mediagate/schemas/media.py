"""Delivery schemas — file metadata, access results, issued URLs, views."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FileDescriptor(BaseModel):
    """Immutable file metadata as stored in the metadata table."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    original_name: str
    mime_type: Optional[str] = None
    size_bytes: int = Field(ge=0)
    storage_path: str


class AccessResult(BaseModel):
    """Outcome of a single existence + permission + metadata lookup.

    ``file_id`` without ``has_access`` means the file exists but the
    requester may not see it (403); neither means it does not exist (404).
    """

    model_config = ConfigDict(frozen=True)

    has_access: bool
    file_id: Optional[str] = None
    metadata: Optional[FileDescriptor] = None

    @model_validator(mode="after")
    def _hide_metadata_when_denied(self) -> "AccessResult":
        if not self.has_access and self.metadata is not None:
            raise ValueError("metadata must not be exposed when access is denied")
        if self.has_access and self.metadata is None:
            raise ValueError("granted access requires metadata")
        return self

    @classmethod
    def granted(cls, metadata: FileDescriptor) -> "AccessResult":
        return cls(has_access=True, file_id=metadata.id, metadata=metadata)

    @classmethod
    def denied(cls, file_id: str) -> "AccessResult":
        return cls(has_access=False, file_id=file_id)

    @classmethod
    def missing(cls) -> "AccessResult":
        return cls(has_access=False)

    @property
    def exists(self) -> bool:
        return self.file_id is not None


class ViewType(str, Enum):
    PREVIEW = "preview"
    STREAM = "stream"
    DOWNLOAD = "download"


class ViewRecord(BaseModel):
    """One served request, written once to the view log."""

    model_config = ConfigDict(frozen=True)

    file_id: str
    viewer_id: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    view_type: ViewType
    bytes_transferred: int = Field(ge=0)


class StreamUrlRequest(BaseModel):
    identity: str = ""
    storage_path: str = ""
    action: Optional[str] = None


class StreamUrlBundle(BaseModel):
    """URLs handed to the client-side resolver."""

    primary_url: str = Field(min_length=1)
    fallback_url: Optional[str] = None
    adaptive_url: Optional[str] = None
    origin_online: bool
    source: str  # "origin" or "fallback"
    file: FileDescriptor


class ErrorDetail(BaseModel):
    """Structured ``detail`` payload for issuing-endpoint errors."""

    code: str
    message: str
    retryable: bool = False
    suggest_download: bool = False
