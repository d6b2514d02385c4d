from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from mcatprep.database import Base


def generate_uuid():
    return str(uuid.uuid4())


def generate_test_code():
    """Short code shown to users in place of the full test id."""
    return uuid.uuid4().hex[:8]


class TestStatus:
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=True)

    # Entitlement (owned by the entitlement engine and billing applier)
    is_paid_member = Column(Boolean, default=False, nullable=False)
    trial_start_date = Column(DateTime, nullable=True)
    trial_end_date = Column(DateTime, nullable=True)
    has_used_trial = Column(Boolean, default=False, nullable=False)
    subscription_type = Column(String, nullable=True)  # "ONE_TIME"
    subscription_length = Column(String, nullable=True)  # "ONE_MONTH", "THREE_MONTHS"
    subscription_start_date = Column(DateTime, nullable=True)
    subscription_end_date = Column(DateTime, nullable=True)
    last_subscription_end_date = Column(DateTime, nullable=True)  # Was paid, now lapsed

    # Payment processor
    stripe_customer_id = Column(String, nullable=True, index=True)

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tests = relationship("Test", back_populates="user")


class Question(Base):
    """
    A question bank record.

    Passages are rows with is_passage=True; their sub-questions point at them
    through passage_id. Passages never carry a passage_id themselves and are
    never placed into a test.
    """
    __tablename__ = "questions"

    id = Column(String, primary_key=True, default=generate_uuid)
    subject = Column(String, nullable=True, index=True)
    unit = Column(String, nullable=True, index=True)
    is_passage = Column(Boolean, default=False, nullable=False, index=True)
    passage_id = Column(String, ForeignKey("questions.id"), nullable=True, index=True)

    # Opaque content markup, passed through unchanged
    passage_markup = Column(Text, nullable=True)
    question_markup = Column(Text, nullable=True)
    answer_choices_markup = Column(Text, nullable=True)
    explanation_markup = Column(Text, nullable=True)

    # Normalised from the answer markup at import time
    correct_choice = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    passage = relationship("Question", remote_side=[id], foreign_keys=[passage_id])


class Test(Base):
    __tablename__ = "tests"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    code = Column(String, unique=True, nullable=False, default=generate_test_code)
    status = Column(String, nullable=False, default=TestStatus.IN_PROGRESS, index=True)

    # Timer
    total_test_duration = Column(Integer, nullable=False, default=3600)  # Seconds, immutable
    start_time = Column(DateTime, nullable=True)  # Unset until first activation
    paused_time = Column(DateTime, nullable=True)
    last_resumed_at = Column(DateTime, nullable=True)  # Start of the current running segment
    remaining_seconds = Column(Integer, nullable=True)  # Snapshot at last checkpoint

    # Result
    score = Column(Float, nullable=True)  # Percentage
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    user = relationship("User", back_populates="tests")
    test_questions = relationship(
        "TestQuestion",
        back_populates="test",
        order_by="TestQuestion.position",
        cascade="all, delete-orphan",
    )


class TestQuestion(Base):
    __tablename__ = "test_questions"

    id = Column(String, primary_key=True, default=generate_uuid)
    test_id = Column(String, ForeignKey("tests.id"), nullable=False, index=True)
    question_id = Column(String, ForeignKey("questions.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # Presentation order, never changes
    user_answer = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    test = relationship("Test", back_populates="test_questions")
    question = relationship("Question")


class BillingEvent(Base):
    """
    Ledger of applied payment events, keyed by the processor's event id.
    A row existing means the event has already changed entitlement dates.
    """
    __tablename__ = "billing_events"

    id = Column(String, primary_key=True)
    kind = Column(String, nullable=False, index=True)  # purchase_succeeded, renewal_succeeded, subscription_cancelled
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    plan = Column(String, nullable=True)
    applied_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User")
