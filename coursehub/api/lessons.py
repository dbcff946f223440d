from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.api.base import CamelModel, Message
from coursehub.api.courses import LessonOut, QuizSummary, course_or_404
from coursehub.api.modules import module_or_404
from coursehub.core.auth import admin_only
from coursehub.core.database import get_db
from coursehub.models.orm import Lesson

router = APIRouter()


class LessonDetail(LessonOut):
    quizzes: List[QuizSummary] = []


class LessonIn(CamelModel):
    course_id: Optional[int] = None
    module_id: Optional[int] = None
    title: str
    youtube_url: Optional[str] = None
    order_index: int = 0
    duration_minutes: Optional[int] = None


class LessonUpdate(CamelModel):
    title: Optional[str] = None
    youtube_url: Optional[str] = None
    order_index: Optional[int] = None
    duration_minutes: Optional[int] = None
    module_id: Optional[int] = None


def lesson_or_404(db: Session, lesson_id: int) -> Lesson:
    lesson = db.get(Lesson, lesson_id)
    if not lesson:
        raise HTTPException(404, "Lesson not found")
    return lesson


@router.get("/module/{module_id}", response_model=List[LessonOut])
def lessons_by_module(module_id: int, db: Session = Depends(get_db)):
    return db.scalars(
        select(Lesson).where(Lesson.module_id == module_id).order_by(Lesson.order_index, Lesson.id)
    ).all()


@router.get("/course/{course_id}", response_model=List[LessonOut])
def lessons_by_course(course_id: int, db: Session = Depends(get_db)):
    return db.scalars(
        select(Lesson).where(Lesson.course_id == course_id).order_by(Lesson.order_index, Lesson.id)
    ).all()


@router.get("/{lesson_id}", response_model=LessonDetail)
def get_lesson(lesson_id: int, db: Session = Depends(get_db)):
    return lesson_or_404(db, lesson_id)


@router.post("", response_model=LessonOut, status_code=201, dependencies=[Depends(admin_only)])
def create_lesson(payload: LessonIn, db: Session = Depends(get_db)):
    data = payload.model_dump()
    if payload.module_id is not None:
        module = module_or_404(db, payload.module_id)
        if payload.course_id is not None and payload.course_id != module.course_id:
            raise HTTPException(400, "Module belongs to a different course")
        data["course_id"] = module.course_id
    elif payload.course_id is None:
        raise HTTPException(400, "courseId or moduleId is required")
    course_or_404(db, data["course_id"])
    lesson = Lesson(**data)
    db.add(lesson)
    db.commit()
    return lesson


@router.put("/{lesson_id}", response_model=LessonOut, dependencies=[Depends(admin_only)])
def update_lesson(lesson_id: int, payload: LessonUpdate, db: Session = Depends(get_db)):
    lesson = lesson_or_404(db, lesson_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("module_id") is not None:
        module = module_or_404(db, changes["module_id"])
        if module.course_id != lesson.course_id:
            raise HTTPException(400, "Module belongs to a different course")
    for required in ("title", "order_index"):
        if changes.get(required) is None:
            changes.pop(required, None)
    for key, value in changes.items():
        setattr(lesson, key, value)
    db.commit()
    return lesson


@router.delete("/{lesson_id}", response_model=Message, dependencies=[Depends(admin_only)])
def delete_lesson(lesson_id: int, db: Session = Depends(get_db)):
    db.delete(lesson_or_404(db, lesson_id))
    db.commit()
    return Message(message="Lesson deleted successfully")
