"""
Tests for membership status derivation, trial days and the test creation gate.
"""

import pytest
from datetime import datetime, timedelta

from mcatprep.models.models import User
from mcatprep.services.entitlement import (
    EntitlementStatus,
    apply_registration_policy,
    derive_status,
    ensure_can_create_test,
    get_membership_status,
    remaining_trial_days,
)
from mcatprep.services.exceptions import EntitlementDeniedError
from mcatprep.services.plans import Plan


NOW = datetime(2025, 3, 15, 12, 0, 0)


@pytest.mark.unit
class TestDeriveStatus:

    def test_paid_one_second_before_end_is_active(self):
        result = derive_status(NOW, True, subscription_end_date=NOW + timedelta(seconds=1))
        assert result.status == EntitlementStatus.ACTIVE_PAID
        assert result.can_extend is True
        assert result.can_purchase is False

    def test_paid_one_second_after_end_is_expired(self):
        result = derive_status(NOW, True, subscription_end_date=NOW - timedelta(seconds=1))
        assert result.status == EntitlementStatus.EXPIRED_PAID
        assert result.can_extend is True
        assert result.can_purchase is True

    def test_paid_at_exact_end_is_expired(self):
        result = derive_status(NOW, True, subscription_end_date=NOW)
        assert result.status == EntitlementStatus.EXPIRED_PAID

    def test_active_trial(self):
        result = derive_status(
            NOW, False,
            trial_start_date=NOW - timedelta(days=1),
            trial_end_date=NOW + timedelta(days=6),
        )
        assert result.status == EntitlementStatus.ACTIVE_TRIAL
        assert result.can_extend is False
        assert result.can_purchase is True

    def test_trial_inclusive_at_end(self):
        result = derive_status(NOW, False, trial_start_date=NOW - timedelta(days=7), trial_end_date=NOW)
        assert result.status == EntitlementStatus.ACTIVE_TRIAL

    def test_expired_trial(self):
        result = derive_status(
            NOW, False,
            trial_start_date=NOW - timedelta(days=8),
            trial_end_date=NOW - timedelta(days=1),
        )
        assert result.status == EntitlementStatus.EXPIRED_TRIAL
        assert result.can_purchase is True

    def test_no_subscription(self):
        result = derive_status(NOW, False)
        assert result.status == EntitlementStatus.NO_SUBSCRIPTION
        assert result.can_extend is False
        assert result.can_purchase is True

    def test_paid_wins_over_stale_trial_dates(self):
        result = derive_status(
            NOW, True,
            subscription_end_date=NOW + timedelta(days=10),
            trial_start_date=NOW - timedelta(days=1),
            trial_end_date=NOW + timedelta(days=6),
        )
        assert result.status == EntitlementStatus.ACTIVE_PAID

    def test_lapsed_member_without_trial_has_no_subscription(self):
        result = derive_status(NOW, False, last_subscription_end_date=NOW - timedelta(days=3))
        assert result.status == EntitlementStatus.NO_SUBSCRIPTION

    def test_trial_not_yet_started(self):
        result = derive_status(
            NOW, False,
            trial_start_date=NOW + timedelta(days=1),
            trial_end_date=NOW + timedelta(days=8),
        )
        assert result.status == EntitlementStatus.NO_SUBSCRIPTION


@pytest.mark.unit
class TestRemainingTrialDays:

    def test_rounds_up(self):
        assert remaining_trial_days(NOW + timedelta(days=2, hours=1), NOW) == 3

    def test_exactly_seven_days(self):
        assert remaining_trial_days(NOW + timedelta(days=7), NOW) == 7

    def test_zero_shortly_after_expiry(self):
        assert remaining_trial_days(NOW - timedelta(hours=5), NOW) == 0

    def test_zero_at_expiry(self):
        assert remaining_trial_days(NOW, NOW) == 0

    def test_none_long_after_expiry(self):
        assert remaining_trial_days(NOW - timedelta(days=2), NOW) is None

    def test_none_without_trial(self):
        assert remaining_trial_days(None, NOW) is None

    def test_none_before_start(self):
        assert remaining_trial_days(
            NOW + timedelta(days=8), NOW, trial_start_date=NOW + timedelta(days=1)
        ) is None


@pytest.mark.unit
class TestRegistrationPolicy:

    def test_new_user_gets_seven_day_trial(self):
        user = User(id="u1", email="u1@example.com")
        apply_registration_policy(user, NOW)

        assert user.is_paid_member is False
        assert user.trial_start_date == NOW
        assert user.trial_end_date == NOW + timedelta(days=7)
        assert user.has_used_trial is True

        membership = get_membership_status(user, NOW)
        assert membership["status"] == "ACTIVE_TRIAL"
        assert membership["remainingTrialDays"] == 7

    def test_paid_registration_skips_trial(self):
        user = User(id="u2", email="u2@example.com")
        apply_registration_policy(user, NOW, plan=Plan.THREE_MONTHS)

        assert user.is_paid_member is True
        assert user.trial_start_date is None
        assert user.trial_end_date is None
        assert user.subscription_type == "ONE_TIME"
        assert user.subscription_length == "THREE_MONTHS"
        assert user.subscription_start_date == NOW
        assert user.subscription_end_date == datetime(2025, 6, 15, 12, 0, 0)


class TestCreationGate:

    def test_trial_user_allowed(self, trial_user):
        assert ensure_can_create_test(trial_user).status == EntitlementStatus.ACTIVE_TRIAL

    def test_paid_user_allowed(self, paid_user):
        assert ensure_can_create_test(paid_user).status == EntitlementStatus.ACTIVE_PAID

    def test_expired_trial_denied(self, expired_trial_user):
        with pytest.raises(EntitlementDeniedError) as exc_info:
            ensure_can_create_test(expired_trial_user)

        assert exc_info.value.status_code == 403
        assert exc_info.value.membership["status"] == "EXPIRED_TRIAL"

    def test_expired_paid_denied(self, expired_paid_user):
        with pytest.raises(EntitlementDeniedError):
            ensure_can_create_test(expired_paid_user)

    def test_membership_status_fields(self, paid_user):
        status = get_membership_status(paid_user)

        assert status["status"] == "ACTIVE_PAID"
        assert status["canExtend"] is True
        assert status["canPurchase"] is False
        assert status["subscriptionLength"] == "ONE_MONTH"
        assert status["trialStart"] is None
        assert status["remainingTrialDays"] is None
        assert status["subscriptionEnd"] is not None
