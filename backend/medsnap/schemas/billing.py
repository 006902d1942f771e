"""
MedSnap Backend — Billing Request/Response Schemas
====================================================

What:  Bodies of the checkout, cancel, and webhook endpoints.
Why:   The frontend sends camelCase JSON (`priceId`, `userId`); aliases keep
       that wire format while the Python side uses snake_case.

Required fields are Optional here on purpose: a missing value is a 400 with
a "Missing ..." message raised by the route, matching what the frontend
already displays, instead of FastAPI's generic 422.
"""

from typing import Optional

from pydantic import BaseModel, Field


class CheckoutSessionRequest(BaseModel):
    model_config = {"populate_by_name": True}

    price_id: Optional[str] = Field(default=None, alias="priceId")
    user_id: Optional[str] = Field(default=None, alias="userId")


class CheckoutSessionResponse(BaseModel):
    model_config = {"populate_by_name": True}

    session_id: str = Field(alias="sessionId")
    url: Optional[str] = None


class CancelSubscriptionRequest(BaseModel):
    model_config = {"populate_by_name": True}

    user_id: Optional[str] = Field(default=None, alias="userId")


class MessageResponse(BaseModel):
    message: str


class WebhookReceivedResponse(BaseModel):
    received: bool = True
