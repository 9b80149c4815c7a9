from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

ContractStatus = Literal["draft", "pending", "approved", "cancelled"]


class ContractBase(BaseModel):
    organization_id: int | None = None
    owner_id: int | None = None
    contract_number: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    description: str | None = None
    value: Decimal | None = None
    address: dict[str, Any] | None = Field(
        default=None, description="May carry a 2-letter 'state' used for the carrier request"
    )

    @model_validator(mode="after")
    def check_coverage_window(self) -> "ContractBase":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ContractCreate(ContractBase):
    client_id: int
    product_id: int
    status: ContractStatus | None = Field(default=None, description="Optional status override")


class ContractUpdate(ContractBase):
    status: ContractStatus | None = None


class ContractRead(BaseModel):
    id: int
    token: str
    client_id: int
    product_id: int
    organization_id: int | None = None
    owner_id: int | None = None
    status: str
    contract_number: str | None = None
    c_number: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    description: str | None = None
    value: Decimal | None = None
    address: dict[str, Any] | None = None
    integration_meta: dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class IntegrationOutcome(BaseModel):
    """Summary of the carrier hand-off that ran with a request."""

    attempted: bool
    success: bool
    status_tag: str
    message: str
    reason: str | None = None
    return_code: str | None = None


class ContractOutcome(BaseModel):
    contract: ContractRead
    integration: IntegrationOutcome | None = None


class ContractsPage(BaseModel):
    items: list[ContractRead]
    total: int
    limit: int
    offset: int
