"""
Billing Event Applier

Applies payment events (purchase, renewal, cancellation) to the entitlement
fields of a user. Charging itself happens in stripe_service; this module only
moves dates.

Every event is recorded in the billing_events ledger under the processor's
event id, so a redelivered event never extends a subscription twice.
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mcatprep.models.models import BillingEvent, User
from mcatprep.services.entitlement import TRIAL_DAYS
from mcatprep.services.exceptions import NotFoundError
from mcatprep.services.plans import ONE_TIME, Plan, add_months

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

PURCHASE_SUCCEEDED = "purchase_succeeded"
RENEWAL_SUCCEEDED = "renewal_succeeded"
SUBSCRIPTION_CANCELLED = "subscription_cancelled"

EVENT_KINDS = (PURCHASE_SUCCEEDED, RENEWAL_SUCCEEDED, SUBSCRIPTION_CANCELLED)

REGRANT_TRIAL_ON_CANCEL = os.getenv("REGRANT_TRIAL_ON_CANCEL", "false").lower() in ("1", "true", "yes")


# =============================================================================
# EVENT APPLICATION
# =============================================================================

def _extend_subscription(user: User, plan: Plan, now: datetime) -> None:
    current_end = user.subscription_end_date
    still_active = bool(user.is_paid_member and current_end and current_end > now)

    # Early renewal extends from the current end date, late renewal from now
    base = current_end if still_active else now

    user.is_paid_member = True
    user.trial_start_date = None
    user.trial_end_date = None
    user.subscription_type = ONE_TIME
    user.subscription_length = plan.value
    if not still_active:
        user.subscription_start_date = now
    user.subscription_end_date = add_months(base, plan.months)


def _cancel_subscription(user: User, now: datetime, regrant_trial: bool) -> None:
    if user.subscription_end_date:
        user.last_subscription_end_date = min(user.subscription_end_date, now)

    user.is_paid_member = False
    user.subscription_type = None
    user.subscription_length = None
    user.subscription_start_date = None
    user.subscription_end_date = None

    if regrant_trial and not user.has_used_trial:
        user.trial_start_date = now
        user.trial_end_date = now + timedelta(days=TRIAL_DAYS)
        user.has_used_trial = True
        logger.info("Granted trial to user %s after cancellation", user.id)


def apply_billing_event(
    db: Session,
    event_id: str,
    kind: str,
    user_id: str,
    plan: Optional[Plan] = None,
    now: Optional[datetime] = None,
    regrant_trial: Optional[bool] = None,
) -> Tuple[User, bool]:
    """
    Apply one payment event to a user's entitlement, at most once per event id.

    Args:
        db: Database session
        event_id: External payment event id, used as the idempotency key
        kind: One of EVENT_KINDS
        user_id: User the event belongs to
        plan: Plan purchased or renewed (required for purchase and renewal)
        now: Current time, defaults to utcnow
        regrant_trial: Override REGRANT_TRIAL_ON_CANCEL

    Returns:
        (user, applied) where applied is False for a duplicate delivery

    Raises:
        NotFoundError: If the user does not exist
        ValueError: If the kind is unknown or the plan is missing or invalid
    """
    if kind not in EVENT_KINDS:
        raise ValueError(f"Unknown billing event kind: {kind}")
    if kind != SUBSCRIPTION_CANCELLED and plan is None:
        raise ValueError(f"{kind} requires a plan")
    # Cancellations may carry the cancelled plan; it is only recorded in the ledger
    plan = Plan(plan) if plan is not None else None

    now = now or datetime.utcnow()
    if regrant_trial is None:
        regrant_trial = REGRANT_TRIAL_ON_CANCEL

    user = db.query(User).filter(User.id == user_id).with_for_update().first()
    if not user:
        raise NotFoundError("User not found")

    if db.query(BillingEvent).filter(BillingEvent.id == event_id).first():
        logger.info("Billing event %s already applied, skipping", event_id)
        return user, False

    if kind == SUBSCRIPTION_CANCELLED:
        _cancel_subscription(user, now, regrant_trial)
    else:
        _extend_subscription(user, plan, now)

    db.add(BillingEvent(
        id=event_id,
        kind=kind,
        user_id=user.id,
        plan=plan.value if plan else None,
        applied_at=now,
    ))

    try:
        db.commit()
    except IntegrityError:
        # A concurrent delivery of the same event won the insert
        db.rollback()
        logger.info("Billing event %s applied concurrently, skipping", event_id)
        return db.query(User).filter(User.id == user_id).first(), False

    db.refresh(user)
    logger.info(
        "Applied billing event %s (%s) to user %s: paid=%s until %s",
        event_id, kind, user.id, user.is_paid_member, user.subscription_end_date,
    )
    return user, True
