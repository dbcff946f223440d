"""
Quiz submission: grade, record the attempt, enforce the failed-attempt limit
and hand final-exam passes over to certificate issuance.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.orm import Session

from coursehub.core.config import settings
from coursehub.models.orm import Certificate, Lesson, Quiz, UserQuizAttempt, UserQuizResponse
from coursehub.services import certificates
from coursehub.services.errors import NotFoundError, PreconditionError
from coursehub.services.grading import GradeResult, grade_submission, is_passing
from coursehub.services.progress import course_lesson_ids, delete_progress, module_lesson_ids

logger = logging.getLogger(__name__)


@dataclass
class SubmissionOutcome:
    attempt: UserQuizAttempt
    grade: GradeResult
    passed: bool
    attempts_remaining: int
    progress_reset: bool
    certificate: Optional[Certificate] = None


def scope_lesson_ids(db: Session, quiz: Quiz) -> List[int]:
    """Lessons a learner must redo after exhausting the attempts on ``quiz``."""
    if quiz.module_id is not None:
        return module_lesson_ids(db, quiz.module_id)
    if quiz.course_id is not None:
        return course_lesson_ids(db, quiz.course_id)
    if quiz.lesson_id is not None:
        return [quiz.lesson_id]
    return []


def owning_course_id(db: Session, quiz: Quiz) -> Optional[int]:
    if quiz.course_id is not None:
        return quiz.course_id
    if quiz.module is not None:
        return quiz.module.course_id
    if quiz.lesson_id is not None:
        return db.scalar(select(Lesson.course_id).where(Lesson.id == quiz.lesson_id))
    return None


def count_failed(db: Session, user_id: int, quiz_id: int) -> int:
    return db.scalar(
        select(func.count(UserQuizAttempt.id)).where(
            UserQuizAttempt.user_id == user_id,
            UserQuizAttempt.quiz_id == quiz_id,
            UserQuizAttempt.passed.is_(False),
        )
    ) or 0


def has_passed(db: Session, user_id: int, quiz_id: int) -> bool:
    return db.scalar(
        select(UserQuizAttempt.id).where(
            UserQuizAttempt.user_id == user_id,
            UserQuizAttempt.quiz_id == quiz_id,
            UserQuizAttempt.passed.is_(True),
        ).limit(1)
    ) is not None


def delete_attempts(db: Session, user_id: int, quiz_id: int) -> int:
    """Delete a learner's attempts and their responses on a quiz. Does not commit."""
    attempt_ids = select(UserQuizAttempt.id).where(
        UserQuizAttempt.user_id == user_id, UserQuizAttempt.quiz_id == quiz_id
    )
    db.execute(
        delete(UserQuizResponse).where(UserQuizResponse.attempt_id.in_(attempt_ids)),
        execution_options={"synchronize_session": False},
    )
    result = db.execute(
        delete(UserQuizAttempt).where(UserQuizAttempt.user_id == user_id, UserQuizAttempt.quiz_id == quiz_id),
        execution_options={"synchronize_session": False},
    )
    return result.rowcount or 0


def reset_after_failures(db: Session, user_id: int, quiz: Quiz) -> None:
    """Clear the quiz's lesson progress and attempt history. Does not commit."""
    removed_progress = delete_progress(db, user_id, scope_lesson_ids(db, quiz))
    removed_attempts = delete_attempts(db, user_id, quiz.id)
    logger.info(
        f"Reset user {user_id} on quiz {quiz.id}: {removed_progress} progress rows, {removed_attempts} attempts"
    )


def submit_quiz(db: Session, user_id: int, quiz_id: int, responses: Iterable[Tuple[int, int]]) -> SubmissionOutcome:
    quiz = db.get(Quiz, quiz_id)
    if quiz is None:
        raise NotFoundError("Quiz not found")
    if has_passed(db, user_id, quiz.id):
        raise PreconditionError("Quiz already passed")

    grade = grade_submission(quiz.questions, responses)
    passed = is_passing(grade.score, quiz.passing_score)

    attempt = UserQuizAttempt(user_id=user_id, quiz_id=quiz.id, score=grade.score, passed=passed)
    attempt.responses = [
        UserQuizResponse(question_id=r.question_id, answer_id=r.answer_id, is_correct=r.is_correct)
        for r in grade.results
    ]
    progress_reset = False
    try:
        db.add(attempt)
        db.flush()
        failed = count_failed(db, user_id, quiz.id)
        if not passed and failed >= settings.MAX_FAILED_ATTEMPTS:
            reset_after_failures(db, user_id, quiz)
            progress_reset = True
            failed = 0
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"User {user_id} scored {grade.score} on quiz {quiz.id} "
        f"({grade.correct_count}/{grade.total_questions}, passed={passed})"
    )

    certificate = None
    if passed and quiz.is_final_exam:
        course_id = owning_course_id(db, quiz)
        if course_id is not None:
            try:
                certificate, _ = certificates.check_and_issue(db, user_id, course_id)
            except PreconditionError as e:
                logger.info(f"No certificate for user {user_id} on course {course_id}: {e.message}")

    return SubmissionOutcome(
        attempt=attempt,
        grade=grade,
        passed=passed,
        attempts_remaining=max(settings.MAX_FAILED_ATTEMPTS - failed, 0),
        progress_reset=progress_reset,
        certificate=certificate,
    )
