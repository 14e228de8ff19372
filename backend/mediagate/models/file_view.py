"""File view log — append-only delivery analytics."""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from mediagate.models.base import Base


class FileView(Base):
    __tablename__ = "file_views"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    viewer_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    view_type: Mapped[str] = mapped_column(String(16), nullable=False)
    bytes_transferred: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    viewed_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
