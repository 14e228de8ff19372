"""Folder tree and guest sharing grants."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from mediagate.models.base import Base


class Folder(Base):
    __tablename__ = "folders"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    parent_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Folder(id={self.id}, name='{self.name}')>"


class FolderShare(Base):
    """A folder (and everything below it) shared by its owner."""

    __tablename__ = "folder_shares"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    folder_id: Mapped[str] = mapped_column(
        String, ForeignKey("folders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )


class GuestFolderAccess(Base):
    """Grant of a folder share to a single guest."""

    __tablename__ = "guest_folder_access"
    __table_args__ = (
        UniqueConstraint("guest_id", "folder_share_id", name="uq_guest_share"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    guest_id: Mapped[str] = mapped_column(
        String, ForeignKey("guest_users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    folder_share_id: Mapped[str] = mapped_column(
        String, ForeignKey("folder_shares.id", ondelete="CASCADE"), nullable=False
    )
    is_restricted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
