"""
Upload coordination endpoints.

The two calls a client makes around a direct upload:
1. POST /upload-url  -> register the file and receive a presigned POST
2. POST /confirm-upload -> report the size once the bytes are in storage

Field names are camelCase to match the JSON the frontend already sends.
Validation failures, missing records and backend errors are raised as
domain errors and turned into {"error": ...} bodies by the handlers in
megamax.main.
"""

import logging
from typing import Optional

from fastapi import APIRouter, status
from pydantic import BaseModel, ConfigDict, Field, StrictInt

from ..dependencies import UploadCoordinatorDep

logger = logging.getLogger(__name__)

router = APIRouter()

# Sizes and ids are stored in BIGINT columns.
BIGINT_MAX = 2**63 - 1


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class UploadUrlRequest(BaseModel):
    """Request for a presigned upload."""
    model_config = ConfigDict(populate_by_name=True)

    filename: Optional[str] = Field(None, description="Original file name (required)")
    content_type: Optional[str] = Field(
        None,
        alias="contentType",
        description="MIME type reported by the client. Not verified."
    )
    size: Optional[int] = Field(
        None,
        le=BIGINT_MAX,
        description="Size the client expects to upload, in bytes"
    )
    user_id: Optional[str] = Field(
        None,
        alias="userId",
        description="Caller identity, taken at face value. Defaults to the anonymous user."
    )


class UploadUrlResponse(BaseModel):
    """Where and how to upload the file."""
    model_config = ConfigDict(populate_by_name=True)

    upload_id: int = Field(alias="uploadId", description="File record id; pass to /confirm-upload")
    key: str = Field(description="Storage key the object will be written to")
    url: str = Field(description="Endpoint to POST the multipart form to")
    fields: dict[str, str] = Field(description="Form fields to send verbatim with the file")


class ConfirmUploadRequest(BaseModel):
    """Report a finished upload."""
    model_config = ConfigDict(populate_by_name=True)

    upload_id: Optional[StrictInt] = Field(
        None,
        alias="uploadId",
        le=BIGINT_MAX,
        description="Id from /upload-url"
    )
    size: Optional[int] = Field(
        None,
        le=BIGINT_MAX,
        description="Size of the uploaded object in bytes"
    )


class OkResponse(BaseModel):
    ok: bool = True


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/upload-url",
    response_model=UploadUrlResponse,
    status_code=status.HTTP_200_OK,
    summary="Request a presigned upload",
    description="Registers a file record and returns a presigned POST for a fresh storage key.",
)
async def request_upload_url(
    request: UploadUrlRequest,
    coordinator: UploadCoordinatorDep,
) -> UploadUrlResponse:
    """
    Register the file and hand back a grant.

    The record is written before the client uploads anything, so it
    exists (with size 0) even if the upload never happens.
    """
    intent = await coordinator.begin_upload(
        owner_id=request.user_id,
        filename=request.filename,
        content_type=request.content_type,
        declared_size=request.size,
    )

    logger.info(
        "Upload URL issued",
        extra={"upload_id": intent.file_id, "key": intent.storage_key}
    )

    return UploadUrlResponse(
        upload_id=intent.file_id,
        key=intent.storage_key,
        url=intent.grant.url,
        fields=intent.grant.fields,
    )


@router.post(
    "/confirm-upload",
    response_model=OkResponse,
    status_code=status.HTTP_200_OK,
    summary="Confirm an upload",
    description="Records the reported size. Calling it again overwrites the size.",
)
async def confirm_upload(
    request: ConfirmUploadRequest,
    coordinator: UploadCoordinatorDep,
) -> OkResponse:
    await coordinator.confirm_upload(request.upload_id, request.size)
    return OkResponse()
