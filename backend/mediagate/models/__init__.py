"""SQLAlchemy ORM models for mediagate."""

from mediagate.models.base import Base
from mediagate.models.user import User
from mediagate.models.guest_user import GuestUser
from mediagate.models.folder import Folder, FolderShare, GuestFolderAccess
from mediagate.models.stored_file import StoredFile
from mediagate.models.file_view import FileView

__all__ = [
    "Base",
    "User",
    "GuestUser",
    "Folder",
    "FolderShare",
    "GuestFolderAccess",
    "StoredFile",
    "FileView",
]
