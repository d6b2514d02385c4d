"""
Stripe Service

Handles Stripe API interactions for payment processing:
- Customer management
- One-off plan charges (PaymentIntents)
- Mapping webhook events to billing events
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import stripe
from fastapi import Depends
from sqlalchemy.orm import Session

from mcatprep.database import get_db
from mcatprep.models.models import User
from mcatprep.services.billing import (
    PURCHASE_SUCCEEDED,
    RENEWAL_SUCCEEDED,
    SUBSCRIPTION_CANCELLED,
)
from mcatprep.services.exceptions import PaymentError
from mcatprep.services.plans import Plan

logger = logging.getLogger(__name__)

# Initialize Stripe
stripe.api_key = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# Price ID mapping from environment
PRICE_IDS = {
    Plan.ONE_MONTH: os.getenv("STRIPE_ONE_MONTH_PRICE_ID"),
    Plan.THREE_MONTHS: os.getenv("STRIPE_THREE_MONTHS_PRICE_ID"),
}

# Stripe event type -> billing event kind
WEBHOOK_EVENT_KINDS = {
    "checkout.session.completed": PURCHASE_SUCCEEDED,
    "invoice.payment_succeeded": RENEWAL_SUCCEEDED,
    "customer.subscription.deleted": SUBSCRIPTION_CANCELLED,
}


def get_price_id(plan: Plan) -> Optional[str]:
    """Get Stripe price ID for a plan."""
    return PRICE_IDS.get(Plan(plan))


# =============================================================================
# PAYMENT GATEWAY
# =============================================================================

@dataclass
class ChargeResult:
    payment_id: str
    plan: Plan


class PaymentGateway:
    """Charges a user for a plan. Either returns a ChargeResult or raises PaymentError."""

    def charge(self, user: User, plan: Plan, payment_method_id: str) -> ChargeResult:
        raise NotImplementedError


class StripePaymentGateway(PaymentGateway):

    def __init__(self, db: Session):
        self.db = db

    def get_or_create_customer(self, user: User) -> str:
        """
        Get existing Stripe customer or create a new one.
        Returns the Stripe customer ID.
        """
        if user.stripe_customer_id:
            return user.stripe_customer_id

        existing = stripe.Customer.list(email=user.email, limit=1)
        if existing.data:
            customer_id = existing.data[0].id
        else:
            customer = stripe.Customer.create(
                email=user.email,
                metadata={"user_id": user.id},
            )
            customer_id = customer.id

        # Flushed only; committed together with the billing event
        user.stripe_customer_id = customer_id
        self.db.flush()
        return customer_id

    def charge(self, user: User, plan: Plan, payment_method_id: str) -> ChargeResult:
        plan = Plan(plan)
        price_id = get_price_id(plan)
        if not price_id:
            raise PaymentError("Plan is not available for purchase", reason="price_not_configured")

        try:
            customer_id = self.get_or_create_customer(user)
            price = stripe.Price.retrieve(price_id)
            intent = stripe.PaymentIntent.create(
                amount=price.unit_amount,
                currency=price.currency,
                customer=customer_id,
                payment_method=payment_method_id,
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata={"user_id": user.id, "plan": plan.value},
            )
        except stripe.CardError as e:
            logger.warning("Card declined for user %s: %s", user.id, e.code)
            raise PaymentError(e.user_message or "Your card was declined", reason=e.code)
        except stripe.StripeError as e:
            logger.error("Stripe charge failed for user %s: %s", user.id, str(e))
            raise PaymentError("Payment could not be processed", reason=type(e).__name__)

        if intent.status != "succeeded":
            logger.warning("Payment %s for user %s ended in status %s", intent.id, user.id, intent.status)
            raise PaymentError("Payment was not completed", reason=intent.status)

        logger.info("Charged user %s for %s (payment_id=%s)", user.id, plan.value, intent.id)
        return ChargeResult(payment_id=intent.id, plan=plan)


def get_payment_gateway(db: Session = Depends(get_db)) -> PaymentGateway:
    """FastAPI dependency; tests override it with a fake gateway."""
    return StripePaymentGateway(db)


# =============================================================================
# WEBHOOKS
# =============================================================================

def parse_webhook_event(payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
    """
    Verify (when a secret is configured) and decode a Stripe webhook payload.

    Raises:
        ValueError: If the payload is not valid JSON or the signature is wrong
    """
    if STRIPE_WEBHOOK_SECRET:
        if not sig_header:
            raise ValueError("Missing Stripe signature")
        try:
            stripe.Webhook.construct_event(payload, sig_header, STRIPE_WEBHOOK_SECRET)
        except stripe.SignatureVerificationError:
            raise ValueError("Invalid signature")
    else:
        logger.warning("STRIPE_WEBHOOK_SECRET not configured. Skipping signature verification.")

    try:
        event = json.loads(payload)
    except (TypeError, json.JSONDecodeError):
        raise ValueError("Invalid payload")
    if not isinstance(event, dict) or "type" not in event or "id" not in event:
        raise ValueError("Invalid payload")
    return event


def _event_metadata(data_object: Dict[str, Any]) -> Dict[str, Any]:
    metadata = data_object.get("metadata") or {}
    if metadata.get("user_id"):
        return metadata
    # Invoices carry the subscription's metadata separately
    details = data_object.get("subscription_details") or {}
    return details.get("metadata") or metadata


def billing_event_from_webhook(event: Dict[str, Any]) -> Optional[Tuple[str, str, str, Optional[str]]]:
    """
    Map a Stripe event to (event_id, kind, user_id, plan).

    Returns None for event types that do not affect entitlement.

    Raises:
        ValueError: If a relevant event lacks a user id or plan
    """
    kind = WEBHOOK_EVENT_KINDS.get(event.get("type"))
    if not kind:
        return None

    data_object = (event.get("data") or {}).get("object") or {}
    metadata = _event_metadata(data_object)

    user_id = metadata.get("user_id")
    if not user_id:
        raise ValueError(f"Event {event.get('id')} has no user_id metadata")

    plan = metadata.get("plan")
    if plan not in {p.value for p in Plan}:
        if kind != SUBSCRIPTION_CANCELLED:
            raise ValueError(f"Event {event.get('id')} has no valid plan metadata")
        # An unrecognised plan must not block a cancellation
        plan = None

    return event["id"], kind, user_id, plan
