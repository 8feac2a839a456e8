"""Re-validate every active lesson that tracks conditions.

Usage: python scripts/validate_lessons.py [--dry-run]
"""
import argparse
import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "services", "journal"))

from dotenv import load_dotenv

load_dotenv()

from db import store
from errors import JournalError
from lessons.service import LessonService

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("validate_lessons")


async def run(dry_run: bool) -> int:
    await store.init_db()
    service = LessonService()
    changed = failed = 0
    try:
        lessons = await service.active_lessons_with_conditions()
        logger.info(f"{len(lessons)} active lessons with conditions")
        for lesson in lessons:
            if dry_run:
                after = await service.compute_stats(lesson.conditions, since=lesson.learned_at)
                logger.info(f"  #{lesson.id} {lesson.title}: {after.total_trades} trades since {lesson.learned_at}")
                continue
            try:
                result = await service.validate(lesson.id)
            except JournalError as e:
                failed += 1
                logger.error(f"  #{lesson.id} {lesson.title}: {e.message}")
                continue
            if result["status"] != result["previous_status"]:
                changed += 1
            logger.info(f"  #{lesson.id} {lesson.title}: {result['status']} ({result['note']})")
    finally:
        await store.close_db()

    logger.info(f"Done: {changed} status changes, {failed} failures")
    return 1 if failed else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--dry-run", action="store_true", help="Only report post-lesson trade counts")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args.dry_run)))
