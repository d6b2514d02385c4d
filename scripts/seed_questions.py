#!/usr/bin/env python3
"""
Seed the question bank from an exported content tree.

Usage:
    python scripts/seed_questions.py ./questions

    # Wipe existing tests and questions first
    python scripts/seed_questions.py ./questions --reset
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from mcatprep.database import Base, SessionLocal, engine, DATABASE_URL  # noqa: E402
from mcatprep.services.question_import import import_question_tree  # noqa: E402


def main():
    parser = argparse.ArgumentParser(
        description="Import questions into the MCAT prep database"
    )
    parser.add_argument(
        "questions_dir",
        type=Path,
        help="Root folder laid out as <subject>/<unit>/<P*|S*>/"
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete existing tests and questions before importing"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if not args.questions_dir.is_dir():
        print(f"ERROR: Directory not found: {args.questions_dir}")
        sys.exit(1)

    print(f"\n{'='*60}")
    print("MCAT PREP QUESTION IMPORT")
    print(f"{'='*60}")
    print(f"Source: {args.questions_dir}")
    print(f"Database: {DATABASE_URL[:50]}...")
    print(f"Reset: {'YES' if args.reset else 'NO'}")
    print(f"{'='*60}\n")

    # Ensure tables exist
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        stats = import_question_tree(db, args.questions_dir, reset=args.reset)
    finally:
        db.close()

    print(f"\nPassages:  {stats.passages}")
    print(f"Questions: {stats.questions}")
    if stats.missing_answers:
        print(f"WARNING: {stats.missing_answers} questions have no correct choice marked")
    if stats.skipped_folders:
        print(f"Skipped folders: {stats.skipped_folders}")


if __name__ == "__main__":
    main()
