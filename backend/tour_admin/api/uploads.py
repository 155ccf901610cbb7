"""
Image uploads for tours and articles
"""

import logging
from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from tour_admin.api.schemas import UploadResult
from tour_admin.core.context import ServiceContext, get_context
from tour_admin.core.security import (
    AuthenticationError, AuthorizationError, auth_http_error, oauth2_scheme, wait_for_admin,
)
from tour_admin.core.storage import StorageError, storage_path

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["uploads"])


class UploadTarget(str, Enum):
    TOURS = "tours"
    ARTICLES = "articles"


@router.post("/{entity_type}",
    response_model=UploadResult,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Files stored, public URLs returned in upload order"},
        400: {"description": "Articles take a single cover image"},
        401: {"description": "Not signed in, or sign-in state could not be resolved in time"},
        413: {"description": "File too large"},
        500: {"description": "Storage error"}
    },
    summary="Upload images",
    description="Store tour images or an article cover under {entityType}/{entityId|new}/{timestamp}-{filename}"
)
async def upload_files(
    entity_type: UploadTarget,
    files: List[UploadFile] = File(...),
    entity_id: Optional[str] = Form(None),
    token: str = Depends(oauth2_scheme),
    context: ServiceContext = Depends(get_context),
):
    try:
        admin = await wait_for_admin(
            context.identity, token, context.settings.AUTH_STATE_TIMEOUT_SECONDS
        )
    except (AuthenticationError, AuthorizationError) as e:
        raise auth_http_error(e)

    if entity_type == UploadTarget.ARTICLES and len(files) > 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Articles take a single cover image"
        )

    # the whole batch is checked before anything reaches storage
    contents = []
    for upload in files:
        data = await upload.read()
        if len(data) > context.settings.MAX_UPLOAD_BYTES:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"{upload.filename} exceeds {context.settings.MAX_UPLOAD_BYTES} bytes"
            )
        contents.append((upload, data))

    urls = []
    for upload, data in contents:
        path = storage_path(entity_type.value, entity_id, upload.filename or "file")
        try:
            urls.append(await context.storage.put(path, data))
        except StorageError as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(e)
            )

    logger.info(f"Admin {admin.id} uploaded {len(urls)} file(s) for {entity_type.value}/{entity_id or 'new'}")
    return UploadResult(urls=urls)
