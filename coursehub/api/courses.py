import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.api.base import CamelModel, Message
from coursehub.core.auth import TokenData, admin_only, get_optional_user
from coursehub.core.database import get_db
from coursehub.models.orm import Course, CourseAccess, CourseTarget, Profile, UserType

logger = logging.getLogger(__name__)

router = APIRouter()


class LessonOut(CamelModel):
    id: int
    course_id: int
    module_id: Optional[int] = None
    title: str
    youtube_url: Optional[str] = None
    order_index: int
    duration_minutes: Optional[int] = None


class QuizSummary(CamelModel):
    id: int
    title: str
    course_id: Optional[int] = None
    module_id: Optional[int] = None
    lesson_id: Optional[int] = None
    passing_score: int
    is_final_exam: bool


class ModuleOut(CamelModel):
    id: int
    course_id: int
    title: str
    description: Optional[str] = None
    order_index: int


class ModuleDetail(ModuleOut):
    lessons: List[LessonOut] = []
    quizzes: List[QuizSummary] = []


class CourseOut(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[str] = None
    course_target: str
    access_user_types: List[str] = []
    created_at: datetime


class CourseListItem(CourseOut):
    modules: List[ModuleOut] = []


class CourseDetail(CourseOut):
    modules: List[ModuleDetail] = []
    lessons: List[LessonOut] = []
    final_exam: Optional[QuizSummary] = None


class CourseIn(CamelModel):
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[str] = None
    course_target: CourseTarget = CourseTarget.BOTH


class CourseUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[str] = None
    course_target: Optional[CourseTarget] = None


class AccessIn(CamelModel):
    user_types: List[UserType]


class AccessResult(CamelModel):
    message: str
    count: int
    user_types: List[str]


def course_or_404(db: Session, course_id: int) -> Course:
    course = db.get(Course, course_id)
    if not course:
        raise HTTPException(404, "Course not found")
    return course


def caller_user_type(db: Session, user: Optional[TokenData]) -> Optional[str]:
    if user is None:
        return None
    return db.scalar(select(Profile.user_type).where(Profile.user_id == user.user_id))


@router.get("", response_model=List[CourseListItem])
def list_courses(user: Optional[TokenData] = Depends(get_optional_user), db: Session = Depends(get_db)):
    courses = db.scalars(select(Course).order_by(Course.created_at.desc(), Course.id.desc())).all()
    user_type = caller_user_type(db, user)
    return [c for c in courses if c.is_open_to(user_type)]


@router.get("/{course_id}", response_model=CourseDetail)
def get_course(course_id: int, db: Session = Depends(get_db)):
    course = course_or_404(db, course_id)
    detail = CourseDetail.model_validate(course)
    final = next((q for q in course.quizzes if q.is_final_exam), None)
    detail.final_exam = QuizSummary.model_validate(final) if final else None
    return detail


@router.post("", response_model=CourseOut, status_code=201, dependencies=[Depends(admin_only)])
def create_course(payload: CourseIn, db: Session = Depends(get_db)):
    data = payload.model_dump()
    data["course_target"] = payload.course_target.value
    course = Course(**data)
    db.add(course)
    db.commit()
    logger.info(f"Created course {course.id}")
    return course


@router.put("/{course_id}", response_model=CourseOut, dependencies=[Depends(admin_only)])
def update_course(course_id: int, payload: CourseUpdate, db: Session = Depends(get_db)):
    course = course_or_404(db, course_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None and key in ("title", "course_target"):
            continue
        if key == "course_target":
            value = CourseTarget(value).value
        setattr(course, key, value)
    db.commit()
    return course


@router.delete("/{course_id}", response_model=Message, dependencies=[Depends(admin_only)])
def delete_course(course_id: int, db: Session = Depends(get_db)):
    course = course_or_404(db, course_id)
    db.delete(course)
    db.commit()
    logger.info(f"Deleted course {course_id}")
    return Message(message="Course deleted successfully")


@router.post("/{course_id}/access", response_model=AccessResult, dependencies=[Depends(admin_only)])
def set_course_access(course_id: int, payload: AccessIn, db: Session = Depends(get_db)):
    course = course_or_404(db, course_id)
    wanted = {t.value for t in payload.user_types}
    kept = [rule for rule in course.access_rules if rule.user_type in wanted]
    added = [CourseAccess(user_type=t) for t in sorted(wanted - {rule.user_type for rule in kept})]
    course.access_rules = kept + added
    db.commit()
    logger.info(f"Course {course.id} access rules set to {sorted(wanted)}")
    return AccessResult(message="Access rules updated", count=len(wanted), user_types=course.access_user_types)
