from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.models.orm import Quiz
from coursehub.services.errors import PreconditionError


def validate_answer_key(flags: Iterable[bool], question: str = "question") -> None:
    """A question must have exactly one answer flagged correct."""
    correct = sum(1 for f in flags if f)
    if correct != 1:
        raise PreconditionError(f"{question} must have exactly one correct answer (found {correct})")


def validate_owner(course_id: Optional[int], module_id: Optional[int], lesson_id: Optional[int],
                   is_final_exam: bool) -> None:
    owners = [o for o in (course_id, module_id, lesson_id) if o is not None]
    if len(owners) != 1:
        raise PreconditionError("A quiz belongs to exactly one of course, module or lesson")
    if is_final_exam and course_id is None:
        raise PreconditionError("A final exam must belong to a course")


def validate_single_final_exam(db: Session, course_id: int, quiz_id: Optional[int] = None) -> None:
    """A course has at most one final exam; ``quiz_id`` is the quiz being edited, if any."""
    query = select(Quiz.id).where(Quiz.course_id == course_id, Quiz.is_final_exam.is_(True))
    if quiz_id is not None:
        query = query.where(Quiz.id != quiz_id)
    if db.scalar(query.limit(1)) is not None:
        raise PreconditionError("Course already has a final exam")
