"""
Entitlement Engine

Derives a user's access status (trial, paid, expired) from the dates stored on
the user record and decides whether a test may be created.
"""

import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from mcatprep.models.models import User
from mcatprep.services.exceptions import EntitlementDeniedError
from mcatprep.services.plans import ONE_TIME, Plan, add_months

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

TRIAL_DAYS = int(os.getenv("TRIAL_DAYS", "7"))

SECONDS_PER_DAY = 86400


class EntitlementStatus(str, Enum):
    ACTIVE_PAID = "ACTIVE_PAID"
    ACTIVE_TRIAL = "ACTIVE_TRIAL"
    EXPIRED_PAID = "EXPIRED_PAID"
    EXPIRED_TRIAL = "EXPIRED_TRIAL"
    NO_SUBSCRIPTION = "NO_SUBSCRIPTION"


# Statuses allowed to create tests
TEST_CREATION_STATUSES = {EntitlementStatus.ACTIVE_PAID, EntitlementStatus.ACTIVE_TRIAL}


@dataclass(frozen=True)
class MembershipStatus:
    status: EntitlementStatus
    can_extend: bool
    can_purchase: bool


# =============================================================================
# STATUS DERIVATION
# =============================================================================

def derive_status(
    now: datetime,
    is_paid_member: bool,
    subscription_end_date: Optional[datetime] = None,
    trial_start_date: Optional[datetime] = None,
    trial_end_date: Optional[datetime] = None,
    last_subscription_end_date: Optional[datetime] = None,
) -> MembershipStatus:
    """
    Compute membership status. First matching rule wins, so stale trial dates
    never mask an active paid period.

    last_subscription_end_date is informational only and does not change the
    outcome; it is accepted so callers can pass the full record.
    """
    if is_paid_member and subscription_end_date and subscription_end_date > now:
        return MembershipStatus(EntitlementStatus.ACTIVE_PAID, can_extend=True, can_purchase=False)

    if (
        not is_paid_member
        and trial_start_date and trial_end_date
        and trial_start_date <= now <= trial_end_date
    ):
        return MembershipStatus(EntitlementStatus.ACTIVE_TRIAL, can_extend=False, can_purchase=True)

    if is_paid_member and subscription_end_date and subscription_end_date <= now:
        return MembershipStatus(EntitlementStatus.EXPIRED_PAID, can_extend=True, can_purchase=True)

    if not is_paid_member and trial_start_date and trial_end_date and trial_end_date <= now:
        return MembershipStatus(EntitlementStatus.EXPIRED_TRIAL, can_extend=False, can_purchase=True)

    return MembershipStatus(EntitlementStatus.NO_SUBSCRIPTION, can_extend=False, can_purchase=True)


def derive_user_status(user: User, now: Optional[datetime] = None) -> MembershipStatus:
    return derive_status(
        now or datetime.utcnow(),
        bool(user.is_paid_member),
        subscription_end_date=user.subscription_end_date,
        trial_start_date=user.trial_start_date,
        trial_end_date=user.trial_end_date,
        last_subscription_end_date=user.last_subscription_end_date,
    )


def remaining_trial_days(
    trial_end_date: Optional[datetime],
    now: datetime,
    trial_start_date: Optional[datetime] = None,
) -> Optional[int]:
    """
    Whole days left in the trial, rounded up. UI messaging only.

    Returns 0 for up to one day after expiry and None after that, when there
    is no trial, or before the trial has begun.
    """
    if not trial_end_date:
        return None
    if trial_start_date and now < trial_start_date:
        return None

    seconds_left = (trial_end_date - now).total_seconds()
    if seconds_left > 0:
        return math.ceil(seconds_left / SECONDS_PER_DAY)
    if seconds_left >= -SECONDS_PER_DAY:
        return 0
    return None


# =============================================================================
# REGISTRATION
# =============================================================================

def apply_registration_policy(user: User, now: datetime, plan: Optional[Plan] = None) -> User:
    """
    Set the initial entitlement of a new user.

    A user registering with a paid plan skips the trial entirely. Everyone
    else gets a TRIAL_DAYS trial starting now.
    """
    if plan is not None:
        plan = Plan(plan)
        user.is_paid_member = True
        user.trial_start_date = None
        user.trial_end_date = None
        user.subscription_type = ONE_TIME
        user.subscription_length = plan.value
        user.subscription_start_date = now
        user.subscription_end_date = add_months(now, plan.months)
    else:
        user.is_paid_member = False
        user.trial_start_date = now
        user.trial_end_date = now + timedelta(days=TRIAL_DAYS)
        user.has_used_trial = True

    return user


# =============================================================================
# ACCESS DECISIONS
# =============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def get_membership_status(user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Membership summary returned by /api/auth/membership-status."""
    now = now or datetime.utcnow()
    membership = derive_user_status(user, now)

    return {
        "status": membership.status.value,
        "canExtend": membership.can_extend,
        "canPurchase": membership.can_purchase,
        "isPaidMember": bool(user.is_paid_member),
        "trialStart": _iso(user.trial_start_date),
        "trialEnd": _iso(user.trial_end_date),
        "remainingTrialDays": remaining_trial_days(
            user.trial_end_date, now, user.trial_start_date
        ),
        "subscriptionType": user.subscription_type,
        "subscriptionLength": user.subscription_length,
        "subscriptionStart": _iso(user.subscription_start_date),
        "subscriptionEnd": _iso(user.subscription_end_date),
        "lastSubscriptionEndDate": _iso(user.last_subscription_end_date),
    }


def ensure_can_create_test(user: User, now: Optional[datetime] = None) -> MembershipStatus:
    """
    Gate for test creation.

    Raises:
        EntitlementDeniedError: Unless the user has an active trial or paid period
    """
    now = now or datetime.utcnow()
    membership = derive_user_status(user, now)

    if membership.status not in TEST_CREATION_STATUSES:
        logger.warning(
            "Test creation denied for user %s: status=%s", user.id, membership.status.value
        )
        raise EntitlementDeniedError(
            "An active trial or subscription is required to create tests",
            membership=get_membership_status(user, now),
        )

    return membership
