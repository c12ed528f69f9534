"""Pydantic models for the operator API."""

from typing import Optional

from pydantic import BaseModel, Field


class SyncRequest(BaseModel):
    """Body of POST /api/sync/*."""

    store_id: Optional[int] = Field(None, alias="storeId")

    class Config:
        populate_by_name = True
