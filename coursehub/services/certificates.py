"""
Certificate issuance.

A certificate is issued once per (user, course) when the learner passed the
course's final exam (if it has one) and completed every lesson of the course.
"""
import logging
import secrets
import string
import time
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coursehub.core.config import settings
from coursehub.models.orm import Certificate, Course, Quiz, UserQuizAttempt, utcnow
from coursehub.services.errors import ConflictError, NotFoundError, PreconditionError
from coursehub.services.progress import completed_lesson_ids, course_lesson_ids

logger = logging.getLogger(__name__)

_ALPHABET = string.digits + string.ascii_uppercase


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


def generate_certificate_number(now: Optional[datetime] = None) -> str:
    """CERT-<year>-<6 random chars>-<base36 millisecond timestamp>."""
    now = now or utcnow()
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    stamp = to_base36(int(time.time() * 1000))
    return f"CERT-{now.year}-{random_part}-{stamp}"


def find_certificate(db: Session, user_id: int, course_id: int) -> Optional[Certificate]:
    return db.scalar(
        select(Certificate).where(Certificate.user_id == user_id, Certificate.course_id == course_id).limit(1)
    )


def final_exam_for(db: Session, course_id: int) -> Optional[Quiz]:
    return db.scalar(
        select(Quiz).where(Quiz.course_id == course_id, Quiz.is_final_exam.is_(True)).order_by(Quiz.id).limit(1)
    )


def check_eligibility(db: Session, user_id: int, course_id: int) -> None:
    final_exam = final_exam_for(db, course_id)
    if final_exam is not None:
        passed = db.scalar(
            select(UserQuizAttempt.id).where(
                UserQuizAttempt.user_id == user_id,
                UserQuizAttempt.quiz_id == final_exam.id,
                UserQuizAttempt.passed.is_(True),
            ).limit(1)
        )
        if passed is None:
            raise PreconditionError("Must pass final exam to receive certificate")

    lesson_ids = course_lesson_ids(db, course_id)
    if len(set(completed_lesson_ids(db, user_id, lesson_ids))) < len(lesson_ids):
        raise PreconditionError("Must complete all lessons to receive certificate")


def check_and_issue(db: Session, user_id: int, course_id: int) -> Tuple[Certificate, bool]:
    """Issue the certificate for (user, course) if the learner qualifies.

    Returns ``(certificate, already_exists)``. Calling it again after issuance
    returns the stored row without writing anything.
    """
    if db.get(Course, course_id) is None:
        raise NotFoundError("Course not found")

    existing = find_certificate(db, user_id, course_id)
    if existing:
        return existing, True

    check_eligibility(db, user_id, course_id)

    for _ in range(settings.CERTIFICATE_NUMBER_RETRIES):
        number = generate_certificate_number()
        taken = db.scalar(select(Certificate.id).where(Certificate.certificate_number == number).limit(1))
        if taken is not None:
            logger.warning(f"Certificate number collision on {number}, regenerating")
            continue

        certificate = Certificate(user_id=user_id, course_id=course_id, certificate_number=number)
        db.add(certificate)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = find_certificate(db, user_id, course_id)
            if existing:
                return existing, True
            logger.warning(f"Certificate number {number} taken concurrently, regenerating")
            continue

        logger.info(f"Issued certificate {number} to user {user_id} for course {course_id}")
        return certificate, False

    raise ConflictError("Could not allocate a unique certificate number")
