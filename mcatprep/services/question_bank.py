"""
Question Bank

Read-only queries over the question pool, filtered by subject and unit.
Passage rows themselves are never returned as questions; sub-questions that
belong to a passage come back with their parent loaded.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, FrozenSet, Any

from sqlalchemy.orm import Session, joinedload

from mcatprep.models.models import Question


UNKNOWN_SUBJECT = "Unknown Subject"
UNKNOWN_UNIT = "Unknown Unit"


@dataclass(frozen=True)
class QuestionQuery:
    """Subject/unit filter. None or an empty set means no restriction."""

    subjects: Optional[FrozenSet[str]] = None
    units: Optional[FrozenSet[str]] = None

    @classmethod
    def build(
        cls,
        subjects: Optional[Iterable[str]] = None,
        units: Optional[Iterable[str]] = None,
    ) -> "QuestionQuery":
        return cls(
            subjects=frozenset(subjects) if subjects else None,
            units=frozenset(units) if units else None,
        )

    def apply(self, query):
        if self.subjects:
            query = query.filter(Question.subject.in_(sorted(self.subjects)))
        if self.units:
            query = query.filter(Question.unit.in_(sorted(self.units)))
        return query


def _answerable(db: Session, query: QuestionQuery):
    return query.apply(db.query(Question).filter(Question.is_passage.is_(False)))


def list_standalone_questions(db: Session, query: QuestionQuery) -> List[Question]:
    """Questions that are not attached to any passage."""
    return (
        _answerable(db, query)
        .filter(Question.passage_id.is_(None))
        .order_by(Question.id)
        .all()
    )


def list_passage_questions(db: Session, query: QuestionQuery) -> List[Question]:
    """Sub-questions of passages, grouped together by passage id."""
    return (
        _answerable(db, query)
        .filter(Question.passage_id.isnot(None))
        .options(joinedload(Question.passage))
        .order_by(Question.passage_id, Question.id)
        .all()
    )


def list_questions_by_subject_unit(db: Session, query: QuestionQuery) -> List[Question]:
    """Every answerable question matching the filter, standalone first."""
    return list_standalone_questions(db, query) + list_passage_questions(db, query)


def count_by_subject_and_unit(db: Session) -> List[Dict[str, Any]]:
    """
    Availability summary for the test builder UI.

    Returns one entry per subject:
        {"subject": str, "units": [{"name": str, "questionCount": int}], "totalQuestionCount": int}
    """
    rows = db.query(Question.subject, Question.unit).filter(
        Question.is_passage.is_(False)
    ).all()

    subjects: Dict[str, Dict[str, Any]] = {}
    for subject, unit in rows:
        subject_name = subject or UNKNOWN_SUBJECT
        unit_name = unit or UNKNOWN_UNIT

        entry = subjects.setdefault(subject_name, {
            "subject": subject_name,
            "units": {},
            "totalQuestionCount": 0,
        })
        entry["units"][unit_name] = entry["units"].get(unit_name, 0) + 1
        entry["totalQuestionCount"] += 1

    return [
        {
            "subject": entry["subject"],
            "units": [
                {"name": name, "questionCount": count}
                for name, count in sorted(entry["units"].items())
            ],
            "totalQuestionCount": entry["totalQuestionCount"],
        }
        for entry in sorted(subjects.values(), key=lambda e: e["subject"])
    ]
