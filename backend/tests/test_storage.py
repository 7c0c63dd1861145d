"""Tests for report file storage and signed download grants."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import pytest

from app.errors import NotFoundError
from app.services.storage import InvalidGrantError, StorageService

FILE_KEY = "reports/patient-1/1700000000000_lipids.pdf"


class _Clock:
    def __init__(self, now: float = 1_767_607_200.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _grant_params(url: str) -> tuple[str, int, str]:
    parts = urlsplit(url)
    query = parse_qs(parts.query)
    file_key = parts.path.removeprefix("/api/files/")
    return file_key, int(query["expires"][0]), query["signature"][0]


@pytest.fixture(name="clock")
def clock_fixture() -> _Clock:
    return _Clock()


@pytest.fixture(name="storage")
def storage_fixture(tmp_path: Path, clock: _Clock) -> StorageService:
    svc = StorageService(
        root=tmp_path / "files",
        signing_key=b"\x22" * 32,
        base_url="https://medshare.example.com/",
        clock=clock,
    )
    svc.store_file(FILE_KEY, b"%PDF-1.4 lipids")
    return svc


class TestStorage:
    def test_store_and_exists(self, storage: StorageService) -> None:
        assert storage.exists(FILE_KEY)
        assert not storage.exists("reports/patient-1/other.pdf")

    def test_path_traversal_rejected(self, storage: StorageService) -> None:
        with pytest.raises(ValueError, match="Path traversal"):
            storage.store_file("../escape.txt", b"x")
        assert storage.exists("../../etc/passwd") is False


class TestDownloadGrant:
    def test_grant_url_shape(self, storage: StorageService, clock: _Clock) -> None:
        grant = storage.generate_download_grant(FILE_KEY, ttl_seconds=600)
        assert grant.expires_in == 600
        assert grant.url.startswith(f"https://medshare.example.com/api/files/{FILE_KEY}?")
        _, expires, signature = _grant_params(grant.url)
        assert expires == int(clock.now) + 600
        assert len(signature) == 64

    def test_missing_file(self, storage: StorageService) -> None:
        with pytest.raises(NotFoundError):
            storage.generate_download_grant("reports/patient-1/missing.pdf")

    def test_redeem(self, storage: StorageService) -> None:
        grant = storage.generate_download_grant(FILE_KEY)
        path = storage.redeem_grant(*_grant_params(grant.url))
        assert path.read_bytes() == b"%PDF-1.4 lipids"

    def test_redeem_expired(self, storage: StorageService, clock: _Clock) -> None:
        grant = storage.generate_download_grant(FILE_KEY, ttl_seconds=60)
        clock.now += 61
        with pytest.raises(InvalidGrantError, match="expired"):
            storage.redeem_grant(*_grant_params(grant.url))

    def test_redeem_altered_expiry(self, storage: StorageService) -> None:
        file_key, expires, signature = _grant_params(storage.generate_download_grant(FILE_KEY).url)
        with pytest.raises(InvalidGrantError, match="signature"):
            storage.redeem_grant(file_key, expires + 3600, signature)

    def test_redeem_signature_for_other_file(self, storage: StorageService) -> None:
        storage.store_file("reports/patient-2/1_other.pdf", b"other")
        _, expires, signature = _grant_params(storage.generate_download_grant(FILE_KEY).url)
        with pytest.raises(InvalidGrantError):
            storage.redeem_grant("reports/patient-2/1_other.pdf", expires, signature)

    def test_redeem_after_file_removed(self, storage: StorageService) -> None:
        grant = storage.generate_download_grant(FILE_KEY)
        (storage.root / FILE_KEY).unlink()
        with pytest.raises(NotFoundError):
            storage.redeem_grant(*_grant_params(grant.url))


class TestFilesRouter:
    """GET /api/files/{key} redeems a grant without any other credential."""

    def test_download(self, client, storage_service: StorageService) -> None:
        storage_service.store_file(FILE_KEY, b"%PDF-1.4 lipids")
        grant = storage_service.generate_download_grant(FILE_KEY)
        resp = client.get(grant.url)
        assert resp.status_code == 200
        assert resp.content == b"%PDF-1.4 lipids"
        assert resp.headers["content-type"] == "application/pdf"

    def test_bad_signature(self, client, storage_service: StorageService) -> None:
        storage_service.store_file(FILE_KEY, b"%PDF-1.4 lipids")
        file_key, expires, _ = _grant_params(storage_service.generate_download_grant(FILE_KEY).url)
        resp = client.get(f"/api/files/{file_key}", params={"expires": expires, "signature": "0" * 64})
        assert resp.status_code == 403

    def test_file_gone(self, client, storage_service: StorageService) -> None:
        storage_service.store_file(FILE_KEY, b"%PDF-1.4 lipids")
        grant = storage_service.generate_download_grant(FILE_KEY)
        (storage_service.root / FILE_KEY).unlink()
        assert client.get(grant.url).status_code == 404

    def test_missing_query_params(self, client) -> None:
        assert client.get(f"/api/files/{FILE_KEY}").status_code == 422
