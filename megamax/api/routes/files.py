"""
File listing and deletion endpoints.

Both work on metadata only. Deleting a file removes its record; the
object in storage is not touched.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Path, Query, status
from pydantic import BaseModel, Field

from ...core.uploads import FileRecord
from ..dependencies import FileGatewayDep
from .uploads import BIGINT_MAX, OkResponse

logger = logging.getLogger(__name__)

router = APIRouter()


class FileSummary(BaseModel):
    """One row of the file listing."""
    id: int = Field(description="File record id")
    user_id: str = Field(description="Owner identity")
    name: str = Field(description="Original file name")
    key: str = Field(description="Storage key")
    size: int = Field(description="Last reported size in bytes (0 until confirmed)")
    created_at: datetime = Field(description="When the upload was registered")

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileSummary":
        return cls(
            id=record.id,
            user_id=record.owner_id,
            name=record.display_name,
            key=record.storage_key,
            size=record.size_bytes,
            created_at=record.created_at,
        )


@router.get(
    "",
    response_model=list[FileSummary],
    status_code=status.HTTP_200_OK,
    summary="List files",
    description="Newest files first, at most 200.",
)
async def list_files(
    gateway: FileGatewayDep,
    limit: Optional[int] = Query(None, ge=1, le=200, description="Maximum rows to return"),
) -> list[FileSummary]:
    if limit is None:
        records = await gateway.list()
    else:
        records = await gateway.list(limit)
    return [FileSummary.from_record(record) for record in records]


@router.delete(
    "/{file_id}",
    response_model=OkResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete file metadata",
    description="Removes the record if present. Always succeeds for a numeric id.",
)
async def delete_file(
    gateway: FileGatewayDep,
    file_id: int = Path(..., le=BIGINT_MAX, description="File record id"),
) -> OkResponse:
    await gateway.delete(file_id)
    logger.info("File record delete requested", extra={"file_id": file_id})
    return OkResponse()
