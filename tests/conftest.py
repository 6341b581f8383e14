from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from assetstore_backend.config import Settings
from assetstore_backend.files import FileStore
from assetstore_backend.pipeline import UploadPipeline
from assetstore_backend.retrieval import AssetRetriever
from assetstore_backend.store import AssetDB
from server import create_app


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_location=tmp_path / "meta.db",
        base_dir=tmp_path / "files",
        max_upload_bytes=1024,
    )


@pytest.fixture()
def client(settings: Settings):
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture()
def files(settings: Settings) -> FileStore:
    fs = FileStore(settings.base_dir)
    fs.prepare()
    return fs


@pytest.fixture()
def db(settings: Settings):
    store = AssetDB(settings.db_location)
    store.open()
    yield store
    store.close()


@pytest.fixture()
def pipeline(files: FileStore, db: AssetDB) -> UploadPipeline:
    return UploadPipeline(files, db, max_upload_bytes=1024)


@pytest.fixture()
def retriever(files: FileStore, db: AssetDB) -> AssetRetriever:
    return AssetRetriever(files, db)
