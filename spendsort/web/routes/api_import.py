"""API routes handling the multi-step transaction file import."""
from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from spendsort.core.config import settings
from spendsort.core.database import get_db
from spendsort.core.rate_limit import rate_limiter
from spendsort.domain.imports import services as import_services
from spendsort.domain.imports.schemas import (
    ImportCommitRequest,
    ImportCommitResponse,
    ImportMappingRequest,
    ImportMappingResponse,
    ImportStatusResponse,
    ImportUploadResponse,
    ImportValidationResponse,
)

router = APIRouter()


@router.post("", response_model=ImportUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_import(
    request: Request,
    file: UploadFile = File(...),
) -> ImportUploadResponse:
    """Parse an uploaded CSV file and open an import batch."""
    client = request.client.host if request.client else "unknown"
    allowed = await rate_limiter.is_allowed(
        f"import:{client}",
        settings.RATE_LIMIT_MAX,
        settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many import attempts. Please try again later.",
        )

    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File name is required")

    file_bytes = await file.read()
    return await import_services.upload_file(filename=file.filename, file_bytes=file_bytes)


@router.get("/{batch_id}", response_model=ImportStatusResponse)
async def get_import(batch_id: str) -> ImportStatusResponse:
    return await import_services.batch_status(batch_id)


@router.put("/{batch_id}/mapping", response_model=ImportMappingResponse)
async def map_import(batch_id: str, payload: ImportMappingRequest) -> ImportMappingResponse:
    """Set the source column -> target field mapping."""
    return await import_services.apply_mapping(batch_id, payload.mapping)


@router.post("/{batch_id}/validate", response_model=ImportValidationResponse)
async def validate_import(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
) -> ImportValidationResponse:
    return await import_services.validate_batch(db, batch_id)


@router.post("/{batch_id}/commit", response_model=ImportCommitResponse)
async def commit_import(
    batch_id: str,
    payload: ImportCommitRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> ImportCommitResponse:
    """Persist the valid rows of a validated batch."""
    options = payload or ImportCommitRequest()
    return await import_services.commit_batch(
        db,
        batch_id,
        apply_rules=options.apply_rules,
        skip_duplicates=options.skip_duplicates,
    )


@router.delete("/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_import(batch_id: str) -> Response:
    await import_services.discard_batch(batch_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
