"""Pydantic models used by the file upload endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class UploadedFile(BaseModel):
    """Metadata describing a file stored in the upload bucket."""

    url: str = Field(..., description="Bucket-relative reference, /<bucket>/<key>")
    filename: str = Field(..., description="Generated object key")
    originalName: str = Field(..., description="File name supplied by the client")
    size: int = Field(..., description="Size in bytes")
    mimetype: str = Field(..., description="Content type recorded with the object")


class FileDeleteRequest(BaseModel):
    url: str = Field(..., min_length=1, description="Reference previously returned by an upload")


class FileDeleteResult(BaseModel):
    reference: str
    key: Optional[str] = None
    status: str
    error: Optional[str] = None
