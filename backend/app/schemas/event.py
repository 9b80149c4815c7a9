from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ContractEventRead(BaseModel):
    id: int
    contract_id: int
    actor_id: int | None = None
    event_type: str
    description: str | None = None
    status_tag: str | None = None
    from_status: str | None = None
    to_status: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("metadata_", "metadata"))
    raw_payload: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RecentEventRead(BaseModel):
    id: int
    event_type: str
    description: str | None = None
    status_tag: str | None = None
    created_at: datetime
    contract_id: int
    contract_number: str | None = None
    contract_token: str | None = None
    client_name: str | None = None
    supplier: str | None = None

    model_config = ConfigDict(from_attributes=True)


class RecentEventsPage(BaseModel):
    success: bool = True
    data: list[RecentEventRead]
