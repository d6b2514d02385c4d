"""
Authentication Router

Email/password registration and login, plus the caller's membership status.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mcatprep.database import get_db
from mcatprep.dependencies.auth import get_current_user
from mcatprep.models.models import BillingEvent, User, generate_uuid
from mcatprep.services.auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    hash_password,
    validate_password_strength,
    verify_password,
)
from mcatprep.services.billing import PURCHASE_SUCCEEDED
from mcatprep.services.entitlement import apply_registration_policy, get_membership_status
from mcatprep.services.plans import Plan
from mcatprep.services.stripe_service import PaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# ==================== Request/Response Models ====================

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    plan: Optional[Plan] = None
    payment_method_id: Optional[str] = Field(None, alias="paymentMethodId")

    class Config:
        populate_by_name = True


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class UserResponse(BaseModel):
    user_id: str
    email: str
    is_paid_member: bool
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    user: UserResponse
    tokens: TokenResponse


# ==================== Helper Functions ====================

def create_user_response(user: User) -> UserResponse:
    return UserResponse(
        user_id=user.id,
        email=user.email,
        is_paid_member=bool(user.is_paid_member),
        created_at=user.created_at,
    )


def create_auth_response(user: User) -> AuthResponse:
    return AuthResponse(
        user=create_user_response(user),
        tokens=TokenResponse(
            access_token=create_access_token(user.id),
            expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        ),
    )


# ==================== Endpoints ====================

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Register a new user.

    With a plan the card is charged first and the paid period starts
    immediately, without a trial. Otherwise the user starts a free trial.
    """
    is_valid, error_msg = validate_password_strength(request.password, request.email)
    if not is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error_msg)

    if db.query(User).filter(User.email == request.email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An account with this email already exists"
        )

    if request.plan and not request.payment_method_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="paymentMethodId is required when registering with a plan"
        )

    now = datetime.utcnow()
    user = User(
        id=generate_uuid(),
        email=request.email,
        password_hash=hash_password(request.password),
        created_at=now,
    )

    charge = None
    if request.plan:
        # Charged before the user is added, so a declined card leaves no account behind
        charge = gateway.charge(user, request.plan, request.payment_method_id)
        apply_registration_policy(user, now, plan=charge.plan)
        db.add(user)
        db.add(BillingEvent(
            id=charge.payment_id,
            kind=PURCHASE_SUCCEEDED,
            user_id=user.id,
            plan=charge.plan.value,
            applied_at=now,
        ))
    else:
        apply_registration_policy(user, now)
        db.add(user)

    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent sign-up for the same email
        db.rollback()
        if charge:
            logger.error(
                "Registration for %s failed after payment %s was taken; it needs a refund",
                request.email, charge.payment_id,
            )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An account with this email already exists"
        )
    db.refresh(user)

    logger.info("Registered user %s (paid=%s)", user.id, user.is_paid_member)
    return create_auth_response(user)


@router.post("/login", response_model=AuthResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Login with email and password."""
    user = db.query(User).filter(User.email == request.email).first()

    if not user or not verify_password(request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    return create_auth_response(user)


@router.get("/membership-status")
def membership_status(current_user: User = Depends(get_current_user)) -> Dict[str, Any]:
    """Trial/subscription status and what the user may buy next."""
    return get_membership_status(current_user)
