"""
MedSnap Backend — Billing Route Handlers
==========================================

What:  Checkout-session creation, subscription cancellation, and the Stripe
       webhook receiver.
Why:   These are the only places Stripe and the profiles table meet; the
       handlers stay thin and hand off to PaymentGateway and
       SubscriptionReconciler.
Who:   The pricing dialog (checkout), the profile dialog (cancel), and
       Stripe itself (webhook).

Endpoints:
    POST /api/create-checkout-session   {priceId, userId} → {sessionId, url}
    POST /api/cancel-subscription       {userId}          → {message}
    POST /api/stripe-webhook            raw body + Stripe-Signature → {received: true}

The checkout and cancel endpoints are called straight from the browser, so
they also answer OPTIONS preflights with 200. The webhook body must be read
raw: re-serialized JSON would not match the signature.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response

from medsnap.config import resolve_price_id, settings
from medsnap.dependencies import (
    get_payment_gateway,
    get_profile_repository,
    get_reconciler,
)
from medsnap.exceptions import ConfigurationError, DatabaseError, ValidationError
from medsnap.schemas.billing import (
    CancelSubscriptionRequest,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    MessageResponse,
    WebhookReceivedResponse,
)
from medsnap.schemas.common import ErrorResponse
from medsnap.schemas.events import parse_event
from medsnap.services.data_store import ProfileRepository
from medsnap.services.payment_service import PaymentGateway
from medsnap.services.subscription_service import SubscriptionReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Billing"])

_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _request_origin(request: Request) -> str:
    """Where Stripe should send the user back to."""
    origin = request.headers.get("origin")
    if origin:
        return origin.rstrip("/")
    host = request.headers.get("host")
    if host:
        return f"https://{host}"
    return settings.public_app_url.rstrip("/")


# ══════════════════════════════════════════════════════════════════════════
# Checkout
# ══════════════════════════════════════════════════════════════════════════


@router.options("/create-checkout-session", include_in_schema=False)
async def checkout_preflight() -> Response:
    return Response(status_code=200, headers=_PREFLIGHT_HEADERS)


@router.post(
    "/create-checkout-session",
    response_model=CheckoutSessionResponse,
    response_model_by_alias=True,
    responses={
        400: {"description": "Missing priceId or userId", "model": ErrorResponse},
        500: {"description": "Stripe not configured or rejected the request", "model": ErrorResponse},
    },
    summary="Start a Stripe Checkout session for a subscription",
)
async def create_checkout_session(
    body: CheckoutSessionRequest,
    request: Request,
    payments: PaymentGateway = Depends(get_payment_gateway),
) -> CheckoutSessionResponse:
    """
    priceId may be a Stripe price ID or one of the aliases "monthly" /
    "yearly", which resolve to STRIPE_PRICE_ID_MONTHLY / _YEARLY.
    """
    if not body.price_id:
        raise ValidationError(message="Missing priceId in request body", field="priceId")
    if not body.user_id:
        raise ValidationError(message="Missing userId in request body", field="userId")

    price_id = resolve_price_id(body.price_id)
    if not price_id:
        raise ConfigurationError(f"Stripe price for '{body.price_id}' not configured")

    session = await payments.create_checkout_session(
        price_id=price_id,
        user_id=body.user_id,
        origin=_request_origin(request),
    )
    return CheckoutSessionResponse(session_id=session["session_id"], url=session["url"])


# ══════════════════════════════════════════════════════════════════════════
# Cancellation
# ══════════════════════════════════════════════════════════════════════════


@router.options("/cancel-subscription", include_in_schema=False)
async def cancel_preflight() -> Response:
    return Response(status_code=200, headers=_PREFLIGHT_HEADERS)


@router.post(
    "/cancel-subscription",
    response_model=MessageResponse,
    responses={
        400: {"description": "Missing userId", "model": ErrorResponse},
        500: {"description": "Not configured or Stripe failure", "model": ErrorResponse},
    },
    summary="Cancel a subscription at the end of the billing period",
)
async def cancel_subscription(
    body: CancelSubscriptionRequest,
    reconciler: SubscriptionReconciler = Depends(get_reconciler),
) -> MessageResponse:
    if not body.user_id:
        raise ValidationError(message="Missing userId", field="userId")

    message = await reconciler.on_cancel_requested(body.user_id)
    return MessageResponse(message=message)


# ══════════════════════════════════════════════════════════════════════════
# Webhook
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "/stripe-webhook",
    response_model=WebhookReceivedResponse,
    responses={
        400: {"description": "Invalid signature or malformed event", "model": ErrorResponse},
        500: {"description": "Not configured or handler failure", "model": ErrorResponse},
    },
    summary="Receive Stripe subscription lifecycle events",
)
async def stripe_webhook(
    request: Request,
    payments: PaymentGateway = Depends(get_payment_gateway),
    profiles: ProfileRepository = Depends(get_profile_repository),
) -> WebhookReceivedResponse:
    """
    Verify, parse, and apply one webhook event.

    Unknown event types and events for customers we do not know are
    acknowledged with 200 so Stripe stops redelivering them. A failed
    profile write answers 500 and Stripe redelivers later.
    """
    payload = await request.body()
    payments.verify_webhook(payload, request.headers.get("stripe-signature"))

    event = parse_event(payload)
    logger.info("Received Stripe event: %s (%s)", event.type, event.id)

    try:
        await SubscriptionReconciler(profiles=profiles).handle_event(event)
    except DatabaseError as e:
        logger.error("Webhook %s failed: %s", event.type, e.message)
        raise DatabaseError(message="Webhook handler failed", context=e.context) from e

    return WebhookReceivedResponse()
