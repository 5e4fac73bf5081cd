"""Pydantic models for API responses."""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class SyncResultModel(BaseModel):
    total: int = 0
    inserted: int = 0
    updated: int = 0
    errors: int = 0


class SyncResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    dry_run: bool = Field(alias="dryRun")
    timestamp: str
    users: SyncResultModel = Field(default_factory=SyncResultModel)
    profiles: SyncResultModel = Field(default_factory=SyncResultModel)


class PingDetails(BaseModel):
    version: Optional[str] = None
    database: str
    tables: int = 0
    connection: str = "active"


class PingResponse(BaseModel):
    ok: bool = True
    details: PingDetails


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
