"""FastAPI application for the store proxy service."""

import logging
import secrets
from typing import Any

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from currents import __version__
from currents.config import Settings
from currents.store_proxy.models import (
    ErrorResponse,
    HealthResponse,
    RowListResponse,
    RowResponse,
    UpdateResponse,
)
from currents.store_proxy.storage import (
    KeyMismatchError,
    RowStorage,
    StorageError,
    UnknownCollectionError,
)

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None, storage: RowStorage | None = None
) -> FastAPI:
    """Build the store proxy app.

    Args:
        settings: Configuration; ``auth_token`` enables bearer auth and
            ``database_url`` selects the database when no storage is given
        storage: Row storage override
    """
    settings = settings or Settings()
    storage = storage or RowStorage(settings.database_url)

    app = FastAPI(
        title="Currents Store Proxy",
        description="Upsert/delete-by-key row store for chat and layout sync",
        version=__version__,
    )
    app.state.storage = storage

    def verify_token(authorization: str | None = Header(default=None)) -> None:
        if not settings.auth_token:
            return
        expected = f"Bearer {settings.auth_token}"
        if authorization is None or not secrets.compare_digest(authorization, expected):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or missing token",
            )

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check():
        """Health check endpoint (no authentication required)."""
        if storage.health_check():
            return HealthResponse(status="ok", storage="connected")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "storage": "disconnected"},
        )

    @app.get(
        "/rows/{collection}",
        response_model=RowListResponse,
        tags=["rows"],
        dependencies=[Depends(verify_token)],
    )
    async def list_rows(collection: str):
        rows = storage.list_rows(collection)
        return RowListResponse(collection=collection, rows=rows)

    @app.get(
        "/rows/{collection}/{key:path}",
        response_model=RowResponse,
        tags=["rows"],
        dependencies=[Depends(verify_token)],
    )
    async def read_row(collection: str, key: str):
        row = storage.get(collection, key)
        if row is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Row not found: {collection}/{key}",
            )
        return RowResponse(collection=collection, key=key, row=row)

    @app.put(
        "/rows/{collection}/{key:path}",
        response_model=RowResponse,
        tags=["rows"],
        dependencies=[Depends(verify_token)],
    )
    async def upsert_row(
        collection: str,
        key: str,
        response: Response,
        row: dict[str, Any] = Body(...),
    ):
        """
        Insert or merge a row keyed by its primary key.

        Returns 201 for new rows, 200 for updates.
        """
        is_new, stored = storage.upsert(collection, key, row)
        response.status_code = status.HTTP_201_CREATED if is_new else status.HTTP_200_OK
        return RowResponse(collection=collection, key=key, row=stored)

    @app.patch(
        "/rows/{collection}/{key:path}",
        response_model=UpdateResponse,
        tags=["rows"],
        dependencies=[Depends(verify_token)],
    )
    async def update_row(
        collection: str, key: str, fields: dict[str, Any] = Body(...)
    ):
        """Merge fields into an existing row; a missing row is not an error."""
        stored = storage.update(collection, key, fields)
        return UpdateResponse(
            collection=collection, key=key, updated=stored is not None, row=stored
        )

    @app.delete(
        "/rows/{collection}/{key:path}",
        status_code=status.HTTP_204_NO_CONTENT,
        tags=["rows"],
        dependencies=[Depends(verify_token)],
    )
    async def delete_row(collection: str, key: str):
        """Delete a row. Deleting a missing row also returns 204."""
        storage.delete(collection, key)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.exception_handler(UnknownCollectionError)
    async def unknown_collection_handler(request: Request, exc: UnknownCollectionError):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=ErrorResponse(
                detail=str(exc), error_code="UNKNOWN_COLLECTION"
            ).model_dump(),
        )

    @app.exception_handler(KeyMismatchError)
    async def key_mismatch_handler(request: Request, exc: KeyMismatchError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(detail=str(exc), error_code="KEY_MISMATCH").model_dump(),
        )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"Storage error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                detail="Storage error", error_code="STORAGE_ERROR"
            ).model_dump(),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent error format."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(detail=str(exc.detail)).model_dump(),
        )

    return app
