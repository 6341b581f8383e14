from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from assetstore_backend.config import (
    API_DESCRIPTION,
    API_MESSAGE,
    API_VERSION,
    MULTIPART_OVERHEAD_BYTES,
    Settings,
    load_settings,
)
from assetstore_backend.errors import AssetStoreError, InvalidRequest, PayloadTooLarge
from assetstore_backend.files import FileStore
from assetstore_backend.logging_setup import configure_logging
from assetstore_backend.models import ApiInfo, ErrorResponse, SessionDocument, UploadResponse
from assetstore_backend.pipeline import UploadPipeline
from assetstore_backend.retrieval import AssetRetriever
from assetstore_backend.store import AssetDB


audit_log = logging.getLogger("assetstore.audit")
logger = logging.getLogger("assetstore")


async def _read_limited(request: Request, limit: int) -> bytes:
    data = bytearray()
    async for chunk in request.stream():
        data.extend(chunk)
        if len(data) > limit:
            raise PayloadTooLarge("Upload too large")
    return bytes(data)


async def read_upload_body(request: Request, limit: int) -> Optional[bytes]:
    """Upload bytes from either a raw body or a multipart ``data`` field."""
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith("multipart/form-data"):
        # The form parser spools every part before we see it, so bound the
        # whole body by its declared length first.
        declared = request.headers.get("content-length")
        if declared is None or not declared.isdigit():
            raise InvalidRequest("Form uploads need a Content-Length")
        if int(declared) > limit + MULTIPART_OVERHEAD_BYTES:
            raise PayloadTooLarge("Upload too large")
        form = await request.form()
        field = form.get("data")
        if field is None:
            return None
        if isinstance(field, UploadFile):
            # Limit read to prevent accidental huge uploads.
            data = await field.read(limit + 1)
        else:
            data = str(field).encode("utf-8")
        if len(data) > limit:
            raise PayloadTooLarge("Upload too large")
        return data
    return await _read_limited(request, limit)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Open store -> serve requests -> close store.
        configure_logging(settings.log_level)
        files = FileStore(settings.base_dir)
        files.prepare()
        db = AssetDB(settings.db_location)
        await run_in_threadpool(db.open)
        app.state.files = files
        app.state.db = db
        app.state.pipeline = UploadPipeline(files, db, max_upload_bytes=settings.max_upload_bytes)
        app.state.retriever = AssetRetriever(files, db)
        logger.info("Serving assets from %s (metadata in %s)", settings.base_dir, settings.db_location)
        try:
            yield
        finally:
            await run_in_threadpool(db.close)

    # Every top-level path is a session id, so the generated API docs stay off.
    app = FastAPI(
        title="AssetStore",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _audit_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        client = request.client.host if request.client else "-"
        audit_log.info("%s %s %s -> %d (%.1fms)", client, request.method, request.url.path,
                       response.status_code, elapsed_ms)
        return response

    @app.exception_handler(AssetStoreError)
    async def _asset_store_error(request: Request, exc: AssetStoreError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        body = ErrorResponse(status=exc.status_code, message=exc.message)
        return JSONResponse(body.model_dump(), status_code=exc.status_code)

    @app.get("/", response_model=ApiInfo)
    async def root() -> ApiInfo:
        return ApiInfo(status=200, message=API_MESSAGE, api=API_VERSION, description=API_DESCRIPTION)

    @app.get("/{session_id}")
    async def get_session(session_id: str, request: Request) -> JSONResponse:
        doc = await request.app.state.retriever.session_document(session_id)
        return JSONResponse(SessionDocument.model_validate(doc).model_dump(by_alias=True))

    @app.api_route("/{session_id}/{filename}", methods=["PUT", "POST"], response_model=UploadResponse)
    async def put_asset(session_id: str, filename: str, request: Request) -> UploadResponse:
        data = await read_upload_body(request, settings.max_upload_bytes)
        if data is None:
            raise InvalidRequest("Missing data field")
        result = await request.app.state.pipeline.store(session_id, filename, data)
        return UploadResponse(
            status=200,
            message="Files stored successfully" if result.created else "File updated successfully",
            path=str(result.path),
            asset=result.asset_key,
            created=result.created,
        )

    @app.get("/{session_id}/{filename}")
    async def get_asset(session_id: str, filename: str, request: Request) -> FileResponse:
        asset = await request.app.state.retriever.resolve(session_id, filename)
        return FileResponse(
            asset.path,
            media_type=asset.mime,
            headers={"X-Content-Type-Options": "nosniff"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    _settings = app.state.settings
    uvicorn.run("server:app", host=_settings.host, port=_settings.port, reload=False)
