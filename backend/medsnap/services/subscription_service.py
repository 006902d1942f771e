"""
MedSnap Backend — Subscription State Reconciler
=================================================

What:  Keeps profiles.subscription_status in line with Stripe's view of the
       customer's subscriptions.
Why:   Stripe is the source of truth for billing; the quota gate only reads
       the local copy, so every lifecycle event has to land here.
How:   Three operations, each a small read-then-write against
       ProfileRepository. Webhook events arrive already validated as tagged
       variants (schemas/events.py) and are dispatched by handle_event().

Status transitions (level-triggered: each event overwrites with the
provider's latest view, so redelivery or reordering is harmless):

    inactive ──checkout.session.completed──▶ active
    active ──POST /api/cancel-subscription──▶ cancelling
    active | cancelling ──subscription.updated/deleted (non-active)──▶ inactive

Failure semantics:
    Unknown customer or missing owner → logged no-op (Stripe gets a 200)
    Profile write fails               → DatabaseError propagates (Stripe redelivers)
"""

import logging
from typing import Optional

from medsnap.exceptions import ConfigurationError
from medsnap.models.profile import SubscriptionStatus
from medsnap.schemas.events import (
    CheckoutCompletedEvent,
    StripeEvent,
    SubscriptionChangedEvent,
)
from medsnap.services.data_store import ProfileRepository
from medsnap.services.payment_service import PaymentGateway

logger = logging.getLogger(__name__)

# Provider statuses that keep paid access
PAID_PROVIDER_STATUSES = frozenset({"active", "trialing"})


class SubscriptionReconciler:
    """
    Applies billing lifecycle changes to profiles.

    Args:
        profiles: Row access for the profiles table.
        payments: Stripe adapter; only on_cancel_requested calls it, so the
            webhook path may pass None.
    """

    def __init__(self, profiles: ProfileRepository, payments: Optional[PaymentGateway] = None):
        self.profiles = profiles
        self.payments = payments

    async def on_checkout_completed(self, customer_ref: Optional[str], owner_ref: str) -> None:
        """Owner becomes an active pro subscriber. Safe to replay."""
        await self.profiles.upsert_checkout(owner_ref, customer_ref)
        logger.info("Subscription activated for user %s (customer %s)", owner_ref, customer_ref)

    async def on_subscription_changed(self, customer_ref: str, provider_status: str) -> bool:
        """
        Overwrite the local status from the provider's reported status.

        Returns:
            False when no profile has this customer reference (nothing written).
        """
        profile = await self.profiles.get_by_customer_ref(customer_ref)
        if profile is None:
            logger.warning("No profile for customer %s; ignoring status %s", customer_ref, provider_status)
            return False

        status = (
            SubscriptionStatus.ACTIVE
            if provider_status in PAID_PROVIDER_STATUSES
            else SubscriptionStatus.INACTIVE
        )
        await self.profiles.set_status(profile, status)
        logger.info(
            "Subscription for user %s set to %s (provider status %s)",
            profile.user_id, status.value, provider_status,
        )
        return True

    async def on_cancel_requested(self, owner_ref: str) -> str:
        """
        Cancel the owner's subscription at the end of the paid period.

        Without a Stripe customer there is nothing to cancel upstream, so the
        profile is simply marked cancelled. Otherwise every active
        subscription is set to cancel at period end and the profile becomes
        cancelling; access stays until Stripe reports the subscription ended.

        Returns:
            Message for the client.

        Raises:
            ConfigurationError: A provider call is needed but no gateway was given.
            PaymentProviderError: Stripe rejected a call. The local status is
                not changed in that case.
        """
        profile = await self.profiles.get(owner_ref)
        if profile is None:
            # Nothing on file to change; the client sees the same outcome
            logger.info("Cancel requested for %s, who has no profile", owner_ref)
            return "Subscription cancelled"

        if not profile.stripe_customer_id:
            await self.profiles.set_status(profile, SubscriptionStatus.CANCELLED)
            logger.info("User %s cancelled without a Stripe customer", owner_ref)
            return "Subscription cancelled"

        if self.payments is None:
            raise ConfigurationError("Stripe not configured")

        subscription_ids = await self.payments.list_active_subscriptions(profile.stripe_customer_id)
        for subscription_id in subscription_ids:
            await self.payments.cancel_at_period_end(subscription_id)

        await self.profiles.set_status(profile, SubscriptionStatus.CANCELLING)
        logger.info(
            "User %s cancelling %d subscription(s) at period end",
            owner_ref, len(subscription_ids),
        )
        return "Subscription will be cancelled at the end of the billing period"

    async def handle_event(self, event: StripeEvent) -> None:
        """Dispatch a verified, parsed webhook event."""
        if isinstance(event, CheckoutCompletedEvent):
            session = event.data.object
            owner_ref = session.owner_ref
            if not owner_ref:
                logger.warning("Checkout session %s has no user reference; ignoring", session.id)
                return
            await self.on_checkout_completed(session.customer, owner_ref)

        elif isinstance(event, SubscriptionChangedEvent):
            subscription = event.data.object
            await self.on_subscription_changed(subscription.customer, subscription.status)

        else:
            logger.info("Unhandled event type: %s", event.type)
