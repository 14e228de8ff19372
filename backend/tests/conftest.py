"""Test fixtures — in-memory SQLite database, FastAPI test client, seed data."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mediagate.database import get_db
from mediagate.main import create_app
from mediagate.models import (
    Folder,
    FolderShare,
    GuestFolderAccess,
    GuestUser,
    StoredFile,
    User,
)
from mediagate.models.base import Base
from mediagate.schemas.media import FileDescriptor

OWNER_ID = "user-owner"
OTHER_USER_ID = "user-other"
GUEST_ID = "guest-1"
BANNED_GUEST_ID = "guest-banned"
OUTSIDER_GUEST_ID = "guest-outsider"

VIDEO_PATH = "user-owner/movie.mp4"
DOC_PATH = "user-owner/notes.pdf"
PRIVATE_PATH = "user-owner/private.jpg"


@pytest_asyncio.fixture
async def db_session():
    """Provide an async in-memory SQLite session for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession):
    """Provide an async test client with overridden DB dependency."""
    app = create_app()

    async def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def seeded(db_session: AsyncSession):
    """Owner with a shared folder tree, guests with and without grants.

    root (shared with GUEST_ID) / videos / movie.mp4
    root / notes.pdf
    private (not shared) / private.jpg
    """
    db_session.add_all(
        [
            User(id=OWNER_ID, username="owner"),
            User(id=OTHER_USER_ID, username="other"),
            GuestUser(id=GUEST_ID, email="guest@example.com", invited_by=OWNER_ID),
            GuestUser(
                id=BANNED_GUEST_ID, email="banned@example.com", invited_by=OWNER_ID, is_banned=True
            ),
            GuestUser(id=OUTSIDER_GUEST_ID, email="outsider@example.com"),
            Folder(id="f-root", owner_id=OWNER_ID, name="root"),
            Folder(id="f-videos", owner_id=OWNER_ID, parent_id="f-root", name="videos"),
            Folder(id="f-private", owner_id=OWNER_ID, name="private"),
            FolderShare(id="share-root", folder_id="f-root"),
            GuestFolderAccess(id="gfa-1", guest_id=GUEST_ID, folder_share_id="share-root"),
            GuestFolderAccess(
                id="gfa-2", guest_id=BANNED_GUEST_ID, folder_share_id="share-root"
            ),
            StoredFile(
                id="file-video",
                owner_id=OWNER_ID,
                folder_id="f-videos",
                name="Movie",
                original_name="movie.mp4",
                mime_type="video/mp4",
                size_bytes=1000,
                storage_path=VIDEO_PATH,
            ),
            StoredFile(
                id="file-doc",
                owner_id=OWNER_ID,
                folder_id="f-root",
                name="Notes",
                original_name="notes.pdf",
                mime_type="application/pdf",
                size_bytes=2048,
                storage_path=DOC_PATH,
            ),
            StoredFile(
                id="file-private",
                owner_id=OWNER_ID,
                folder_id="f-private",
                name="Private",
                original_name="private.jpg",
                mime_type="image/jpeg",
                size_bytes=512,
                storage_path=PRIVATE_PATH,
            ),
        ]
    )
    await db_session.commit()
    return db_session


def make_file(**overrides) -> FileDescriptor:
    """FileDescriptor with sensible defaults for service-level tests."""
    values = dict(
        id="file-video",
        display_name="Movie",
        original_name="movie.mp4",
        mime_type="video/mp4",
        size_bytes=1000,
        storage_path=VIDEO_PATH,
    )
    values.update(overrides)
    return FileDescriptor(**values)


@pytest.fixture
def video_file() -> FileDescriptor:
    return make_file()


class FakeRecorder:
    """Collects handed-off views instead of writing them."""

    def __init__(self, fail: bool = False):
        self.views = []
        self.fail = fail

    def record(self, view) -> None:
        if self.fail:
            raise RuntimeError("recorder exploded")
        self.views.append(view)
