"""API request/response schemas for the payment endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class InitiatePaymentRequest(BaseModel):
    """Payload accepted by `POST /api/initiate-payment`."""

    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber", min_length=1)
    amount: float = Field(gt=0, allow_inf_nan=False)


class InitiatePaymentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(serialization_alias="paymentId")


class PaymentStatusResponse(BaseModel):
    """Current state of one payment, for clients that missed their push."""

    payment_id: str = Field(serialization_alias="paymentId")
    status: str
    external_ref: str | None = Field(default=None, serialization_alias="externalRef")
    amount: float
