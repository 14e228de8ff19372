"""Identity resolution and the single-query file access check."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from mediagate.models import Folder, FolderShare, GuestFolderAccess, GuestUser, StoredFile, User
from mediagate.schemas.media import AccessResult, FileDescriptor

logger = logging.getLogger(__name__)


class IdentityNotFound(Exception):
    pass


class IdentityBanned(Exception):
    pass


@dataclass(frozen=True)
class Principal:
    id: str
    kind: str  # "user" or "guest"


async def resolve_identity(db: AsyncSession, identity: str) -> Principal:
    """Look up a user or guest id. Raises IdentityNotFound / IdentityBanned."""
    result = await db.execute(select(User.id, User.is_banned).where(User.id == identity))
    row = result.first()
    kind = "user"
    if row is None:
        result = await db.execute(
            select(GuestUser.id, GuestUser.is_banned).where(GuestUser.id == identity)
        )
        row = result.first()
        kind = "guest"
    if row is None:
        raise IdentityNotFound(identity)
    if row.is_banned:
        raise IdentityBanned(identity)
    return Principal(id=row.id, kind=kind)


class AccessGate:
    """Existence + permission + metadata in one round trip.

    Access is granted to the owner, or to a guest holding an unrestricted
    grant on an active share of the file's folder or any ancestor folder.
    Read-only; safe for any number of concurrent callers.
    """

    async def check(self, db: AsyncSession, identity: str, storage_path: str) -> AccessResult:
        row = (await db.execute(self._statement(identity, storage_path))).first()
        if row is None:
            return AccessResult.missing()

        stored: StoredFile = row[0]
        if not row.has_access:
            logger.info("Access denied: identity=%s file=%s", identity, stored.id)
            return AccessResult.denied(stored.id)

        return AccessResult.granted(
            FileDescriptor(
                id=stored.id,
                display_name=stored.name,
                original_name=stored.original_name,
                mime_type=stored.mime_type,
                size_bytes=stored.size_bytes,
                storage_path=stored.storage_path,
            )
        )

    @staticmethod
    def _statement(identity: str, storage_path: str):
        live_file = (
            StoredFile.storage_path == storage_path,
            StoredFile.is_deleted.is_(False),
        )

        # Folder chain from the file's folder up to the root. UNION (not
        # UNION ALL) stops on a cyclic parent chain.
        ancestors = (
            select(Folder.id, Folder.parent_id)
            .join(StoredFile, StoredFile.folder_id == Folder.id)
            .where(*live_file)
            .cte("ancestors", recursive=True)
        )
        walked = ancestors.alias()
        parent = aliased(Folder)
        ancestors = ancestors.union(
            select(parent.id, parent.parent_id).where(parent.id == walked.c.parent_id)
        )

        shared_with_guest = (
            select(GuestFolderAccess.id)
            .join(FolderShare, FolderShare.id == GuestFolderAccess.folder_share_id)
            .join(ancestors, ancestors.c.id == FolderShare.folder_id)
            .where(
                GuestFolderAccess.guest_id == identity,
                GuestFolderAccess.is_restricted.is_(False),
                FolderShare.is_active.is_(True),
            )
            .exists()
        )

        return select(
            StoredFile,
            or_(StoredFile.owner_id == identity, shared_with_guest).label("has_access"),
        ).where(*live_file)
