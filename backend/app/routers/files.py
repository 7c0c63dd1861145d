"""Download endpoint for signed report-file grants."""

from __future__ import annotations

from pathlib import PurePosixPath

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from app.dependencies import get_storage_service
from app.errors import NotFoundError
from app.services.storage import InvalidGrantError, StorageService
from app.utils.formats import extension_to_mime

router = APIRouter(prefix="/api/files", tags=["files"])


@router.get("/{file_key:path}")
async def download_file(
    file_key: str,
    expires: int,
    signature: str,
    storage: StorageService = Depends(get_storage_service),
) -> FileResponse:
    """Serve a report file to whoever holds a valid download grant."""
    try:
        path = storage.redeem_grant(file_key, expires, signature)
    except InvalidGrantError as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(
        path,
        media_type=extension_to_mime(file_key) or "application/octet-stream",
        filename=PurePosixPath(file_key).name,
    )
