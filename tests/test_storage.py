"""Tests for report photo storage with Supabase mocked out."""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from civicpulse.infrastructure.storage import (
    MOCK_BASE_URL, StorageError, SupabaseStorageService
)


@pytest.fixture
def storage():
    service = SupabaseStorageService()
    service.url = "https://project.supabase.co"
    service.key = "service-key"
    service.bucket = "reports"
    return service


def mocked_client(mock_cls, status_code=200, error=None):
    client = AsyncMock()
    if error is not None:
        client.request.side_effect = error
    else:
        client.request.return_value = MagicMock(status_code=status_code, text="")
    mock_cls.return_value.__aenter__.return_value = client
    return client


def test_path_is_keyed_by_owner(storage):
    path = storage.generate_path("Photo.JPEG", "user-1")
    owner, name = path.split("/")
    assert owner == "user-1"
    assert name.endswith(".jpeg")
    assert storage.generate_path("Photo.JPEG", "user-1") != path


def test_unconfigured_storage_returns_mock_url():
    service = SupabaseStorageService()
    service.url = ""
    url, path = asyncio.run(service.upload_image(b"data", "a.png", "image/png", "user-1"))
    assert url.startswith(f"{MOCK_BASE_URL}/user-1/")
    assert path.startswith("mock/user-1/")
    assert asyncio.run(service.delete_image(path)) is True


def test_upload_returns_public_url(storage):
    with patch("civicpulse.infrastructure.storage.httpx.AsyncClient") as mock_cls:
        client = mocked_client(mock_cls, status_code=200)
        url, path = asyncio.run(storage.upload_image(b"data", "a.png", "image/png", "user-1"))

    method, target = client.request.call_args.args
    assert method == "POST"
    assert target == f"https://project.supabase.co/storage/v1/object/reports/{path}"
    assert client.request.call_args.kwargs["headers"]["Content-Type"] == "image/png"
    assert url == f"https://project.supabase.co/storage/v1/object/public/reports/{path}"


def test_rejected_upload_raises(storage):
    with patch("civicpulse.infrastructure.storage.httpx.AsyncClient") as mock_cls:
        mocked_client(mock_cls, status_code=413)
        with pytest.raises(StorageError):
            asyncio.run(storage.upload_image(b"data", "a.png", "image/png", "user-1"))


def test_unreachable_storage_raises(storage):
    with patch("civicpulse.infrastructure.storage.httpx.AsyncClient") as mock_cls:
        mocked_client(mock_cls, error=httpx.ConnectError("connection refused"))
        with pytest.raises(StorageError):
            asyncio.run(storage.upload_image(b"data", "a.png", "image/png", "user-1"))


@pytest.mark.parametrize("status_code,deleted", [(200, True), (404, True), (500, False)])
def test_delete(storage, status_code, deleted):
    with patch("civicpulse.infrastructure.storage.httpx.AsyncClient") as mock_cls:
        mocked_client(mock_cls, status_code=status_code)
        assert asyncio.run(storage.delete_image("user-1/abc.png")) is deleted
