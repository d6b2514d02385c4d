"""
Tests Router

Timed practice tests: create, list, view, start/resume, pause, answer and
complete. All endpoints act on the caller's own tests only; someone else's
test id is answered with 404.
"""

import logging
import os
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from mcatprep.database import get_db
from mcatprep.dependencies.auth import get_current_user
from mcatprep.models.models import User
from mcatprep.services.test_session import (
    complete_test,
    create_test,
    get_test_details,
    list_user_tests,
    pause_test,
    record_answer,
    serialize_test,
    serialize_test_question,
    start_test,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tests", tags=["tests"])

DEFAULT_QUESTION_COUNT = int(os.getenv("DEFAULT_QUESTION_COUNT", "10"))


# ============================================================================
# Request Models
# ============================================================================

class CreateTestRequest(BaseModel):
    subjects: Optional[List[str]] = None
    units: Optional[List[str]] = None
    question_count: int = Field(DEFAULT_QUESTION_COUNT, alias="questionCount", ge=1)

    class Config:
        populate_by_name = True


class PauseTestRequest(BaseModel):
    remaining_seconds: Optional[int] = Field(None, alias="remainingSeconds", ge=0)

    class Config:
        populate_by_name = True


class AnswerRequest(BaseModel):
    user_answer: Optional[str] = Field(None, alias="userAnswer", max_length=50)

    class Config:
        populate_by_name = True


# ============================================================================
# Endpoints
# ============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def create(
    request: CreateTestRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Assemble a new test. 409 with availableQuestions when the bank is short."""
    test = create_test(
        db,
        current_user,
        subjects=request.subjects,
        units=request.units,
        question_count=request.question_count,
    )
    details = get_test_details(db, test.id, current_user.id)
    details["testId"] = test.id
    return details


@router.get("")
def list_tests(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_user_tests(db, current_user.id)


@router.patch("/questions/{test_question_id}")
def answer_question(
    test_question_id: str,
    request: AnswerRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    test_question = record_answer(db, test_question_id, current_user.id, request.user_answer)
    return serialize_test_question(test_question)


@router.get("/{test_id}")
def get_test(
    test_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Test with its ordered questions and live remaining time."""
    return get_test_details(db, test_id, current_user.id)


@router.post("/{test_id}/start")
def start(
    test_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Start the timer, or resume it if the test is paused."""
    test = start_test(db, test_id, current_user.id)
    return serialize_test(test, datetime.utcnow())


@router.post("/{test_id}/pause")
def pause(
    test_id: str,
    request: PauseTestRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    test = pause_test(db, test_id, current_user.id, request.remaining_seconds)
    return serialize_test(test, datetime.utcnow())


@router.post("/{test_id}/complete")
def complete(
    test_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Score the test. Repeated calls return the same result."""
    complete_test(db, test_id, current_user.id)
    return get_test_details(db, test_id, current_user.id)
