"""Wire shapes of the Paypack API and its webhook callbacks."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AuthResponse(BaseModel):
    """Body of `POST /auth/agents/authorize`; `expires` is an absolute Unix timestamp."""

    access: str | None = None
    refresh: str | None = None
    expires: float


class CashinResult(BaseModel):
    """Accepted cash-in as returned by `POST /transactions/cashin`."""

    model_config = ConfigDict(populate_by_name=True)

    external_ref: str = Field(alias="ref", min_length=1)
    status: str
    amount: float
    provider: str | None = None
    kind: str | None = None
    created_at: str | None = None


class WebhookTransaction(BaseModel):
    model_config = ConfigDict(extra="allow")

    ref: str = Field(min_length=1)
    status: str


class WebhookEvent(BaseModel):
    """Webhook body; Paypack nests the transaction under `data`."""

    event_id: str | None = None
    kind: str | None = None
    data: WebhookTransaction

    @model_validator(mode="before")
    @classmethod
    def _wrap_flat_payload(cls, value: Any) -> Any:
        if isinstance(value, dict) and "data" not in value:
            return {"data": value}
        return value
