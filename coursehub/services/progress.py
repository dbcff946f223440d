import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coursehub.models.orm import Lesson, Module, UserProgress, utcnow
from coursehub.services.errors import NotFoundError
from coursehub.services.grading import percentage

logger = logging.getLogger(__name__)


@dataclass
class CourseProgress:
    progress: List[UserProgress]
    completed_count: int
    total_lessons: int
    percentage: int


def course_lesson_ids(db: Session, course_id: int) -> List[int]:
    return list(db.scalars(select(Lesson.id).where(Lesson.course_id == course_id)))


def module_lesson_ids(db: Session, module_id: int) -> List[int]:
    return list(db.scalars(select(Lesson.id).where(Lesson.module_id == module_id)))


def completed_lesson_ids(db: Session, user_id: int, lesson_ids: Sequence[int]) -> List[int]:
    if not lesson_ids:
        return []
    return list(db.scalars(
        select(UserProgress.lesson_id).where(
            UserProgress.user_id == user_id,
            UserProgress.lesson_id.in_(lesson_ids),
            UserProgress.completed.is_(True),
        )
    ))


def mark_complete(db: Session, user_id: int, lesson_id: int) -> Tuple[UserProgress, bool]:
    """Mark a lesson complete; returns the row and whether it was created."""
    if db.get(Lesson, lesson_id) is None:
        raise NotFoundError("Lesson not found")
    existing = _find_progress(db, user_id, lesson_id)
    if existing:
        return _touch(db, existing), False
    row = UserProgress(user_id=user_id, lesson_id=lesson_id, completed=True, completed_at=utcnow())
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # a concurrent request inserted the row first
        existing = _find_progress(db, user_id, lesson_id)
        if existing is None:
            raise
        return _touch(db, existing), False
    logger.info(f"User {user_id} completed lesson {lesson_id}")
    return row, True


def _find_progress(db: Session, user_id: int, lesson_id: int):
    return db.scalar(
        select(UserProgress).where(UserProgress.user_id == user_id, UserProgress.lesson_id == lesson_id).limit(1)
    )


def _touch(db: Session, row: UserProgress) -> UserProgress:
    row.completed = True
    row.completed_at = utcnow()
    db.commit()
    return row


def course_progress(db: Session, user_id: int, course_id: int) -> CourseProgress:
    lesson_ids = course_lesson_ids(db, course_id)
    rows = []
    if lesson_ids:
        rows = list(db.scalars(
            select(UserProgress).where(UserProgress.user_id == user_id, UserProgress.lesson_id.in_(lesson_ids))
        ))
    completed = sum(1 for r in rows if r.completed)
    total = len(lesson_ids)
    pct = percentage(completed, total)
    return CourseProgress(progress=rows, completed_count=completed, total_lessons=total, percentage=pct)


def delete_progress(db: Session, user_id: int, lesson_ids: Sequence[int]) -> int:
    """Delete a learner's progress rows for the given lessons. Does not commit."""
    if not lesson_ids:
        return 0
    result = db.execute(
        delete(UserProgress).where(UserProgress.user_id == user_id, UserProgress.lesson_id.in_(lesson_ids))
    )
    return result.rowcount or 0


def reset_module_progress(db: Session, user_id: int, module_id: int) -> int:
    if db.get(Module, module_id) is None:
        raise NotFoundError("Module not found")
    removed = delete_progress(db, user_id, module_lesson_ids(db, module_id))
    db.commit()
    logger.info(f"Reset {removed} progress rows of user {user_id} in module {module_id}")
    return removed
