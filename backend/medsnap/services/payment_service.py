"""
MedSnap Backend — Payment Provider Adapter (Stripe)
=====================================================

What:  Thin wrapper over the Stripe SDK for the four calls the product makes.
Why:   Keeps the SDK, API keys, and Stripe error types out of the reconciler
       and the routes; everything Stripe-specific is translated here.
How:   The synchronous SDK runs in a worker thread (asyncio.to_thread) so a
       slow Stripe response does not block the event loop. The API key is
       passed per call, never set globally.

Calls:
    create_checkout_session  → hosted checkout for a subscription price
    list_active_subscriptions → IDs of a customer's active subscriptions
    cancel_at_period_end     → schedule cancellation, keep paid access
    verify_webhook           → Stripe-Signature header check

Error translation:
    stripe.SignatureVerificationError → WebhookSignatureError (400)
    stripe.StripeError                → PaymentProviderError (500, upstream message)

Nothing here retries; Stripe redelivers webhooks on its own schedule.
"""

import asyncio
import logging
from typing import Dict, List, Optional

import stripe

from medsnap.config import settings
from medsnap.exceptions import ConfigurationError, PaymentProviderError, WebhookSignatureError

logger = logging.getLogger(__name__)

# Pinned so webhook payload shapes do not change under us
STRIPE_API_VERSION = "2023-10-16"

# Seconds of clock skew tolerated on webhook timestamps
WEBHOOK_TOLERANCE = 300


class PaymentGateway:
    """Stripe calls used by checkout, cancellation, and the webhook."""

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        """
        Raises:
            ConfigurationError: No Stripe secret key is configured.
        """
        self.secret_key = secret_key if secret_key is not None else settings.stripe_secret_key
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        if not self.secret_key:
            raise ConfigurationError("Stripe secret key not configured")

    def _options(self) -> Dict[str, str]:
        return {"api_key": self.secret_key, "stripe_version": STRIPE_API_VERSION}

    async def create_checkout_session(self, price_id: str, user_id: str, origin: str) -> Dict[str, Optional[str]]:
        """
        Start a hosted checkout for a subscription.

        The user ID travels as client_reference_id and metadata.userId; the
        checkout.session.completed webhook reads it back to find the profile.

        Returns:
            {"session_id": ..., "url": ...}
        """
        params = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": f"{origin}/dashboard?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{origin}/dashboard",
            "client_reference_id": user_id,
            "metadata": {"userId": user_id},
        }
        logger.info("Creating checkout session: price=%s user=%s origin=%s", price_id, user_id, origin)
        try:
            session = await asyncio.to_thread(stripe.checkout.Session.create, **params, **self._options())
        except stripe.StripeError as e:
            logger.error("Stripe checkout error for user %s: %s", user_id, e.user_message or str(e))
            raise PaymentProviderError(
                message=e.user_message or str(e),
                context={"user_id": user_id, "price_id": price_id},
            ) from e

        logger.info("Checkout session created: %s", session.id)
        return {"session_id": session.id, "url": getattr(session, "url", None)}

    async def list_active_subscriptions(self, customer_ref: str) -> List[str]:
        """IDs of the customer's subscriptions whose status is active."""
        try:
            result = await asyncio.to_thread(
                stripe.Subscription.list,
                customer=customer_ref,
                status="active",
                **self._options(),
            )
        except stripe.StripeError as e:
            raise PaymentProviderError(
                message=e.user_message or str(e),
                context={"customer": customer_ref},
            ) from e
        return [subscription.id for subscription in result.auto_paging_iter()]

    async def cancel_at_period_end(self, subscription_id: str) -> None:
        """Mark a subscription to end with its current period (not immediately)."""
        try:
            await asyncio.to_thread(
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=True,
                **self._options(),
            )
        except stripe.StripeError as e:
            raise PaymentProviderError(
                message=e.user_message or str(e),
                context={"subscription_id": subscription_id},
            ) from e
        logger.info("Subscription %s set to cancel at period end", subscription_id)

    def verify_webhook(self, payload: bytes, signature_header: Optional[str]) -> None:
        """
        Check the Stripe-Signature header against the raw request body.

        Raises:
            ConfigurationError: No webhook secret is configured.
            WebhookSignatureError: Header missing, malformed, stale, or wrong.
        """
        if not self.webhook_secret:
            raise ConfigurationError("Stripe webhook secret not configured")
        if not signature_header:
            raise WebhookSignatureError(message="Invalid signature", context={"reason": "missing header"})
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature_header,
                self.webhook_secret,
                WEBHOOK_TOLERANCE,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            logger.error("Webhook signature verification failed: %s", str(e))
            raise WebhookSignatureError(message="Invalid signature", context={"reason": str(e)}) from e
