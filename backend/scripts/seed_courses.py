"""CLI script to seed or clear the study planner database.
Usage: python scripts/seed_courses.py [--clear-only]
"""
import sys
import argparse
import logging
import pathlib

# Ensure `backend/` is on sys.path so `studyplanner` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlmodel import Session  # noqa: E402

from studyplanner import services  # noqa: E402
from studyplanner.database import create_db_and_tables, engine  # noqa: E402


def main(clear_only: bool = False):
    """Clear all course data and, unless `clear_only`, load the demo courses.

    Results are printed to stdout for a quick CLI feedback loop.
    """
    create_db_and_tables()
    with Session(engine) as session:
        svc = services.SeedService(session)
        if clear_only:
            svc.clear()
            print('All data cleared')
            return
        result = svc.seed()
        print(f"{result['message']}: {result['courses']} courses")
        for label, courses in services.CourseService(session).grouped():
            print(f'  {label}: {", ".join(c.abbreviation or c.name for c in courses)}')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--clear-only', action='store_true', help='Only delete existing data')
    parser.add_argument('--log-level', default='WARNING')
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper())
    main(clear_only=args.clear_only)
