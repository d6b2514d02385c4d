"""
Questions Router

Question availability for the test builder.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mcatprep.database import get_db
from mcatprep.dependencies.auth import get_current_user
from mcatprep.models.models import User
from mcatprep.services.question_bank import count_by_subject_and_unit

router = APIRouter(prefix="/api/questions", tags=["questions"])


@router.get("/counts")
def question_counts(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Answerable question counts per subject and unit."""
    return count_by_subject_and_unit(db)
