import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coursehub.api.base import CamelModel, Message
from coursehub.api.courses import CourseOut, caller_user_type, course_or_404
from coursehub.core.auth import TokenData, admin_only, get_current_user
from coursehub.core.database import get_db
from coursehub.models.orm import Enrollment

logger = logging.getLogger(__name__)

router = APIRouter()


class EnrollmentOut(CamelModel):
    id: int
    user_id: int
    course_id: int
    enrolled_at: datetime
    course: CourseOut


class EnrollIn(CamelModel):
    course_id: int


def _already_enrolled() -> HTTPException:
    return HTTPException(400, "Already enrolled in this course")


@router.get("/me", response_model=List[EnrollmentOut])
def my_enrollments(current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    return db.scalars(
        select(Enrollment).where(Enrollment.user_id == current.user_id)
        .order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())
    ).all()


@router.post("", response_model=EnrollmentOut, status_code=201)
def enroll(payload: EnrollIn, current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    existing = db.scalar(
        select(Enrollment.id).where(Enrollment.user_id == current.user_id, Enrollment.course_id == payload.course_id)
    )
    if existing:
        raise _already_enrolled()
    course = course_or_404(db, payload.course_id)
    if not course.is_open_to(caller_user_type(db, current)):
        raise HTTPException(403, "No access to this course")

    enrollment = Enrollment(user_id=current.user_id, course_id=course.id)
    db.add(enrollment)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise _already_enrolled()
    logger.info(f"User {current.user_id} enrolled in course {course.id}")
    return enrollment


@router.get("", response_model=List[EnrollmentOut], dependencies=[Depends(admin_only)])
def list_enrollments(db: Session = Depends(get_db)):
    return db.scalars(select(Enrollment).order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())).all()


@router.get("/course/{course_id}", response_model=List[EnrollmentOut], dependencies=[Depends(admin_only)])
def course_enrollments(course_id: int, db: Session = Depends(get_db)):
    return db.scalars(
        select(Enrollment).where(Enrollment.course_id == course_id)
        .order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())
    ).all()


@router.delete("/{enrollment_id}", response_model=Message, dependencies=[Depends(admin_only)])
def delete_enrollment(enrollment_id: int, db: Session = Depends(get_db)):
    enrollment = db.get(Enrollment, enrollment_id)
    if not enrollment:
        raise HTTPException(404, "Enrollment not found")
    db.delete(enrollment)
    db.commit()
    return Message(message="Enrollment deleted successfully")
