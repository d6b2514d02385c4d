"""
Question Import

Loads questions from an exported content tree into the question bank:

    <root>/<subject>/<unit>/P*/passage.html   passage folder
    <root>/<subject>/<unit>/P*/Q*.html        sub-questions of that passage
    <root>/<subject>/<unit>/S*/Q*.html        standalone questions

Each Q*.html may have a Q*_ans.html (answer choices) and Q*_exp.html
(explanation) next to it. The correct choice is read from the answer markup
once, at import time, and stored on the question.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from sqlalchemy.orm import Session

from mcatprep.models.models import Question, Test, TestQuestion

logger = logging.getLogger(__name__)

PASSAGE_FILE = "passage.html"

_TAG_RE = re.compile(r"<[^>]*\bdata-correct\s*=\s*[\"']true[\"'][^>]*>", re.IGNORECASE)
_CHOICE_RE = re.compile(r"\bdata-choice\s*=\s*[\"']([^\"']*)[\"']", re.IGNORECASE)
_VALUE_RE = re.compile(r"\bvalue\s*=\s*[\"']([^\"']*)[\"']", re.IGNORECASE)


@dataclass
class ImportStats:
    passages: int = 0
    questions: int = 0
    missing_answers: int = 0
    skipped_folders: int = 0


def extract_correct_choice(answer_markup: Optional[str]) -> Optional[str]:
    """
    Read the correct choice from legacy answer markup.

    The correct element carries data-correct="true"; its choice is the
    data-choice attribute, or the value attribute when data-choice is absent.
    """
    if not answer_markup:
        return None

    match = _TAG_RE.search(answer_markup)
    if not match:
        return None

    tag = match.group(0)
    choice = _CHOICE_RE.search(tag) or _VALUE_RE.search(tag)
    if not choice or not choice.group(1).strip():
        return None
    return choice.group(1).strip()


def _read(path: Path) -> Optional[str]:
    return path.read_text(encoding="utf-8") if path.exists() else None


def _question_files(folder: Path) -> List[Path]:
    return sorted(
        f for f in folder.iterdir()
        if f.is_file()
        and f.name.startswith("Q")
        and f.suffix == ".html"
        and "_ans" not in f.stem
        and "_exp" not in f.stem
    )


def _upsert(db: Session, question_id: str, **fields) -> Question:
    question = db.query(Question).filter(Question.id == question_id).first()
    if question is None:
        question = Question(id=question_id)
        db.add(question)
    for name, value in fields.items():
        setattr(question, name, value)
    return question


def _import_questions(
    db: Session,
    folder: Path,
    subject: str,
    unit: str,
    stats: ImportStats,
    passage_id: Optional[str] = None,
) -> None:
    for question_file in _question_files(folder):
        question_id = question_file.stem
        answer_markup = _read(folder / f"{question_id}_ans.html") or ""
        correct_choice = extract_correct_choice(answer_markup)
        if correct_choice is None:
            logger.warning("No correct choice marked for question %s", question_id)
            stats.missing_answers += 1

        _upsert(
            db,
            question_id,
            subject=subject,
            unit=unit,
            is_passage=False,
            passage_id=passage_id,
            passage_markup=None,
            question_markup=question_file.read_text(encoding="utf-8"),
            answer_choices_markup=answer_markup,
            explanation_markup=_read(folder / f"{question_id}_exp.html") or "",
            correct_choice=correct_choice,
        )
        stats.questions += 1


def import_passage_folder(db: Session, folder: Path, subject: str, unit: str, stats: ImportStats) -> None:
    passage_markup = _read(folder / PASSAGE_FILE)
    if passage_markup is None:
        logger.warning("No %s found in %s, skipping", PASSAGE_FILE, folder)
        stats.skipped_folders += 1
        return

    _upsert(
        db,
        folder.name,
        subject=subject,
        unit=unit,
        is_passage=True,
        passage_id=None,
        passage_markup=passage_markup,
        question_markup=None,
        answer_choices_markup=None,
        explanation_markup=None,
        correct_choice=None,
    )
    # Sub-question rows reference the passage row
    db.flush()
    stats.passages += 1

    _import_questions(db, folder, subject, unit, stats, passage_id=folder.name)


def reset_question_bank(db: Session) -> None:
    """Delete all tests and questions. Billing history is kept."""
    db.query(TestQuestion).delete()
    db.query(Test).delete()
    db.query(Question).filter(Question.passage_id.isnot(None)).delete()
    db.query(Question).delete()
    db.commit()
    logger.info("Question bank reset")


def import_question_tree(db: Session, root: Path, reset: bool = False) -> ImportStats:
    """
    Import every subject/unit folder under root. Commits once per unit.

    Raises:
        FileNotFoundError: If root is not a directory
    """
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"Question directory not found: {root}")

    if reset:
        reset_question_bank(db)

    stats = ImportStats()
    for subject_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        for unit_dir in sorted(p for p in subject_dir.iterdir() if p.is_dir()):
            for folder in sorted(p for p in unit_dir.iterdir() if p.is_dir()):
                if folder.name.startswith("P"):
                    import_passage_folder(db, folder, subject_dir.name, unit_dir.name, stats)
                elif folder.name.startswith("S"):
                    _import_questions(db, folder, subject_dir.name, unit_dir.name, stats)
                else:
                    logger.debug("Ignoring folder %s", folder)
                    stats.skipped_folders += 1
            db.commit()
            logger.info("Imported %s / %s", subject_dir.name, unit_dir.name)

    logger.info(
        "Import finished: %d passages, %d questions, %d without a correct choice",
        stats.passages, stats.questions, stats.missing_answers,
    )
    return stats
