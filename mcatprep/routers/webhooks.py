"""
Webhooks Router

Handles Stripe webhook events that change membership:
- checkout.session.completed - plan purchased
- invoice.payment_succeeded - plan renewed
- customer.subscription.deleted - membership cancelled

Each event is applied at most once, keyed by its Stripe event id.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from mcatprep.database import get_db
from mcatprep.services.billing import apply_billing_event
from mcatprep.services.exceptions import NotFoundError
from mcatprep.services.stripe_service import billing_event_from_webhook, parse_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Handle Stripe webhook events.

    Malformed or unsigned payloads get a 400. Events that cannot be matched to
    a user are logged and acknowledged so Stripe stops retrying them.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = parse_webhook_event(payload, sig_header)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    event_type = event["type"]
    logger.info("Processing Stripe webhook: event_type=%s event_id=%s", event_type, event["id"])

    try:
        billing_event = billing_event_from_webhook(event)
        if billing_event is None:
            logger.debug("Unhandled Stripe event type: %s", event_type)
            return {"status": "ignored", "event_type": event_type}

        event_id, kind, user_id, plan = billing_event
        _, applied = apply_billing_event(db, event_id, kind, user_id, plan=plan)
    except (NotFoundError, ValueError) as e:
        logger.error("Webhook event %s could not be applied: %s", event["id"], str(e))
        return {"status": "skipped", "event_type": event_type}

    return {"status": "success" if applied else "duplicate", "event_type": event_type}
