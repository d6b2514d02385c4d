"""
Payments Router

One-off plan payments:
- Purchase a plan (new or lapsed members)
- Renew (extend) a paid membership

Both charge through the payment gateway, then apply the resulting billing
event keyed by the processor's payment id.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from mcatprep.database import get_db
from mcatprep.dependencies.auth import get_current_user
from mcatprep.models.models import User
from mcatprep.services.billing import PURCHASE_SUCCEEDED, RENEWAL_SUCCEEDED, apply_billing_event
from mcatprep.services.entitlement import derive_user_status, get_membership_status
from mcatprep.services.exceptions import InvalidStateError
from mcatprep.services.plans import Plan
from mcatprep.services.stripe_service import PaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


# Request models
class PaymentRequest(BaseModel):
    plan: Plan
    payment_method_id: str = Field(..., alias="paymentMethodId", min_length=1)

    class Config:
        populate_by_name = True


def _charge_and_apply(
    db: Session,
    user: User,
    request: PaymentRequest,
    gateway: PaymentGateway,
    kind: str,
):
    charge = gateway.charge(user, request.plan, request.payment_method_id)
    user, _ = apply_billing_event(db, charge.payment_id, kind, user.id, plan=charge.plan)
    return {
        "paymentId": charge.payment_id,
        "membership": get_membership_status(user),
    }


@router.post("/purchase")
def purchase(
    request: PaymentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Buy a plan. Active paid members must renew instead."""
    membership = derive_user_status(current_user)
    if not membership.can_purchase:
        raise InvalidStateError("You already have an active membership; renew it instead")

    logger.info("Purchase of %s requested by user %s", request.plan.value, current_user.id)
    return _charge_and_apply(db, current_user, request, gateway, PURCHASE_SUCCEEDED)


@router.post("/renew")
def renew(
    request: PaymentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Extend a paid membership; early renewals extend from the current end date."""
    membership = derive_user_status(current_user)
    if not membership.can_extend:
        raise InvalidStateError("Only paid memberships can be renewed; purchase a plan instead")

    logger.info("Renewal of %s requested by user %s", request.plan.value, current_user.id)
    return _charge_and_apply(db, current_user, request, gateway, RENEWAL_SUCCEEDED)
