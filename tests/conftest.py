"""
Pytest configuration and fixtures for the MCAT prep backend tests.

Provides:
- Test database setup/teardown
- FastAPI test client
- User fixtures in each membership state
- Question bank fixtures (standalone questions and passage groups)
- A fake payment gateway
"""

import pytest
import os
from typing import Generator, List
from datetime import datetime, timedelta
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///./test_mcatprep.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-at-least-32-characters"
os.environ.pop("STRIPE_WEBHOOK_SECRET", None)
os.environ.pop("SENTRY_DSN", None)

from mcatprep.main import app
from mcatprep.database import Base, get_db
from mcatprep.models.models import User, Question
from mcatprep.services.auth import create_access_token, hash_password
from mcatprep.services.exceptions import PaymentError
from mcatprep.services.plans import Plan
from mcatprep.services.stripe_service import ChargeResult, PaymentGateway, get_payment_gateway


# Test database setup
TEST_DATABASE_URL = "sqlite:///./test_mcatprep.db"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database tables once per test session"""
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()
    if os.path.exists("./test_mcatprep.db"):
        os.remove("./test_mcatprep.db")


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Provide a database session for each test, with rollback after"""
    connection = test_engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()


class FakePaymentGateway(PaymentGateway):
    """Records charges; declines when decline_reason is set.

    on_charge, when set, runs after a successful charge and before it returns.
    """

    def __init__(self):
        self.charges = []
        self.decline_reason = None
        self.on_charge = None

    def charge(self, user, plan, payment_method_id):
        if self.decline_reason:
            raise PaymentError("Your card was declined", reason=self.decline_reason)
        payment_id = f"pi_test_{len(self.charges) + 1}"
        self.charges.append((user.id, Plan(plan), payment_method_id))
        if self.on_charge:
            self.on_charge()
        return ChargeResult(payment_id=payment_id, plan=Plan(plan))


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture(scope="function")
def client(db: Session, payment_gateway: FakePaymentGateway) -> Generator[TestClient, None, None]:
    """Provide FastAPI test client with database and payment overrides"""
    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close - let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# =========================================================================
# User Fixtures
# =========================================================================

def make_user(db: Session, user_id: str, **fields) -> User:
    user = User(
        id=user_id,
        email=f"{user_id}@example.com",
        password_hash=hash_password("Secret123"),
        **fields
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def trial_user(db: Session) -> User:
    """User three days into a seven day trial"""
    now = datetime.utcnow()
    return make_user(
        db, "trial-user",
        trial_start_date=now - timedelta(days=3),
        trial_end_date=now + timedelta(days=4),
        has_used_trial=True,
    )


@pytest.fixture
def paid_user(db: Session) -> User:
    now = datetime.utcnow()
    return make_user(
        db, "paid-user",
        is_paid_member=True,
        subscription_type="ONE_TIME",
        subscription_length="ONE_MONTH",
        subscription_start_date=now - timedelta(days=25),
        subscription_end_date=now + timedelta(days=5),
    )


@pytest.fixture
def expired_trial_user(db: Session) -> User:
    now = datetime.utcnow()
    return make_user(
        db, "expired-trial-user",
        trial_start_date=now - timedelta(days=10),
        trial_end_date=now - timedelta(days=3),
        has_used_trial=True,
    )


@pytest.fixture
def expired_paid_user(db: Session) -> User:
    now = datetime.utcnow()
    return make_user(
        db, "expired-paid-user",
        is_paid_member=True,
        subscription_type="ONE_TIME",
        subscription_length="ONE_MONTH",
        subscription_start_date=now - timedelta(days=31),
        subscription_end_date=now - timedelta(days=1),
    )


@pytest.fixture
def other_user(db: Session) -> User:
    now = datetime.utcnow()
    return make_user(
        db, "other-user",
        trial_start_date=now,
        trial_end_date=now + timedelta(days=7),
        has_used_trial=True,
    )


def auth_headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def auth_headers(trial_user: User) -> dict:
    return auth_headers_for(trial_user)


@pytest.fixture
def headers_for():
    """Build auth headers for any user fixture"""
    return auth_headers_for


# =========================================================================
# Question Fixtures
# =========================================================================

def answer_markup(correct: str) -> str:
    return "".join(
        f'<input type="radio" name="answer" data-choice="{c}"'
        + (' data-correct="true"' if c == correct else "")
        + f' value="{c}"> Choice {c}<br>'
        for c in "ABCD"
    )


def make_standalone(db: Session, count: int, subject="Biology", unit="Cells", prefix="S") -> List[Question]:
    questions = [
        Question(
            id=f"{prefix}{i:03d}",
            subject=subject,
            unit=unit,
            is_passage=False,
            question_markup=f"<p>Standalone question {i}</p>",
            answer_choices_markup=answer_markup("A"),
            explanation_markup="<p>A is correct.</p>",
            correct_choice="A",
        )
        for i in range(count)
    ]
    db.add_all(questions)
    db.commit()
    return questions


def make_passage(db: Session, passage_id: str, size: int, subject="Biology", unit="Cells") -> List[Question]:
    db.add(Question(
        id=passage_id,
        subject=subject,
        unit=unit,
        is_passage=True,
        passage_markup=f"<p>Passage {passage_id}</p>",
    ))
    db.flush()
    questions = [
        Question(
            id=f"{passage_id}-Q{i:02d}",
            subject=subject,
            unit=unit,
            is_passage=False,
            passage_id=passage_id,
            question_markup=f"<p>{passage_id} question {i}</p>",
            answer_choices_markup=answer_markup("B"),
            explanation_markup="<p>B is correct.</p>",
            correct_choice="B",
        )
        for i in range(size)
    ]
    db.add_all(questions)
    db.commit()
    return questions


@pytest.fixture
def question_bank(db: Session) -> dict:
    """Eight standalone questions and one passage of ten.

    A passage is never split, so a 10-question test drawn from this bank takes
    the whole passage rather than stopping at the 75% passage target.
    """
    return {
        "standalone": make_standalone(db, 8),
        "passage": make_passage(db, "P001", 10),
    }


@pytest.fixture
def small_bank(db: Session) -> dict:
    """Six standalone questions and a passage of four"""
    return {
        "standalone": make_standalone(db, 6),
        "passage": make_passage(db, "P100", 4),
    }


@pytest.fixture
def chemistry_questions(db: Session) -> List[Question]:
    """Three standalone chemistry questions alongside the biology fixtures"""
    return make_standalone(db, 3, subject="Chemistry", unit="Acids", prefix="C")
