# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from tasklink.policy.access import AccessPolicy
from tasklink.storage.local_store import LocalStore
from tasklink.tasks.synchronizer import TaskSynchronizer
from tasklink.tasks.uploader import AssetUploader

from .fakes import ADMIN, COLLAB, SUPER, FakeIdentity, FakeImageGateway, FakeRoles, FakeTaskGateway


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="tasklink-test",
        log_level="DEBUG",
        mode="local",
        api_url="https://api.test",
        request_timeout_seconds=1.0,
        upload_path="/images",
        data_dir=tmp_path,
        db_path=tmp_path / "tasklink.sqlite3",
        session_path=tmp_path / "session.json",
        media_dir=tmp_path / "media",
        media_base_url="http://media.test/m",
    )


@pytest.fixture()
def store(tmp_path: Path) -> LocalStore:
    return LocalStore(tmp_path / "tasklink.sqlite3")


@pytest.fixture()
def identity() -> FakeIdentity:
    return FakeIdentity(user=COLLAB)


@pytest.fixture()
def roles() -> FakeRoles:
    return FakeRoles({u.id: u.role for u in (COLLAB, ADMIN, SUPER)})


@pytest.fixture()
def gateway() -> FakeTaskGateway:
    return FakeTaskGateway(owner=COLLAB.id)


@pytest.fixture()
def images() -> FakeImageGateway:
    return FakeImageGateway()


@pytest.fixture()
def sync(gateway: FakeTaskGateway, images: FakeImageGateway, identity: FakeIdentity, roles: FakeRoles) -> TaskSynchronizer:
    """Synchronizer wired with deterministic fakes and the real access policy."""
    return TaskSynchronizer(
        gateway,
        AssetUploader(images),
        identity=identity,
        policy=AccessPolicy(roles=roles),
    )


@pytest.fixture()
def image_file(tmp_path: Path) -> Path:
    path = tmp_path / "photo.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
    return path
