from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class AssetRecord(BaseModel):
    path: str
    modified: int  # epoch milliseconds
    size: int
    mime: str
    hash: str
    updated: int = 0


class SessionDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    assets: Dict[str, AssetRecord] = Field(default_factory=dict)


class ApiInfo(BaseModel):
    status: int
    message: str
    api: int
    description: str


class UploadResponse(BaseModel):
    status: int
    message: str
    path: str
    asset: str
    created: bool


class ErrorResponse(BaseModel):
    status: int
    message: str
