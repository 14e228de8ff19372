"""Tests for POST /api/stream/url."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient

from conftest import GUEST_ID, PRIVATE_PATH, VIDEO_PATH, make_file
from mediagate.schemas.media import ErrorDetail, StreamUrlBundle
from mediagate.services.stream_issuer import StreamIssueError


def _issuer(result=None, error=None):
    issuer = MagicMock()
    issuer.issue = AsyncMock(return_value=result, side_effect=error)
    return issuer


@pytest.mark.asyncio
async def test_issue_url(client: AsyncClient, seeded):
    bundle = StreamUrlBundle(
        primary_url="https://origin.test/stream?path=x&token=t",
        fallback_url="https://fallback.test/signed",
        origin_online=True,
        source="origin",
        file=make_file(),
    )
    issuer = _issuer(result=bundle)
    with patch("mediagate.api.routes.stream.get_stream_issuer", return_value=issuer):
        resp = await client.post(
            "/api/stream/url", json={"identity": GUEST_ID, "storage_path": VIDEO_PATH}
        )

    assert resp.status_code == 200
    data = resp.json()
    assert data["primary_url"] == bundle.primary_url
    assert data["origin_online"] is True
    assert data["file"]["id"] == "file-video"

    identity, file = issuer.issue.await_args.args
    assert identity == GUEST_ID
    assert file.storage_path == VIDEO_PATH


@pytest.mark.asyncio
async def test_issue_url_denied(client: AsyncClient, seeded):
    issuer = _issuer()
    with patch("mediagate.api.routes.stream.get_stream_issuer", return_value=issuer):
        resp = await client.post(
            "/api/stream/url", json={"identity": GUEST_ID, "storage_path": PRIVATE_PATH}
        )

    assert resp.status_code == 403
    assert resp.json()["detail"]["retryable"] is False
    issuer.issue.assert_not_awaited()


@pytest.mark.asyncio
async def test_issue_url_missing_fields(client: AsyncClient, seeded):
    resp = await client.post("/api/stream/url", json={"identity": GUEST_ID})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_issue_url_unavailable_is_retryable(client: AsyncClient, seeded):
    error = StreamIssueError(
        503, ErrorDetail(code="origin_unavailable", message="down", retryable=True)
    )
    with patch("mediagate.api.routes.stream.get_stream_issuer", return_value=_issuer(error=error)):
        resp = await client.post(
            "/api/stream/url", json={"identity": GUEST_ID, "storage_path": VIDEO_PATH}
        )

    assert resp.status_code == 503
    detail = resp.json()["detail"]
    assert detail["code"] == "origin_unavailable"
    assert detail["retryable"] is True
