from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.api.base import CamelModel, Message
from coursehub.api.courses import LessonOut
from coursehub.core.auth import TokenData, admin_only, get_current_user
from coursehub.core.database import get_db
from coursehub.models.orm import UserProgress
from coursehub.services import progress as progress_service
from coursehub.services.groups import can_view_member

router = APIRouter()


class ProgressOut(CamelModel):
    id: int
    user_id: int
    lesson_id: int
    completed: bool
    completed_at: Optional[datetime] = None


class ProgressWithLesson(ProgressOut):
    lesson: LessonOut


class CourseProgressOut(CamelModel):
    progress: List[ProgressOut]
    completed_count: int
    total_lessons: int
    percentage: int


class CompleteIn(CamelModel):
    lesson_id: int


@router.get("/me", response_model=List[ProgressWithLesson])
def my_progress(current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    return db.scalars(
        select(UserProgress).where(UserProgress.user_id == current.user_id).order_by(UserProgress.id)
    ).all()


@router.get("/course/{course_id}", response_model=CourseProgressOut)
def course_progress(course_id: int, current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    summary = progress_service.course_progress(db, current.user_id, course_id)
    return CourseProgressOut(
        progress=[ProgressOut.model_validate(p) for p in summary.progress],
        completed_count=summary.completed_count,
        total_lessons=summary.total_lessons,
        percentage=summary.percentage,
    )


@router.post("/complete", response_model=ProgressOut)
def complete_lesson(payload: CompleteIn, response: Response, current: TokenData = Depends(get_current_user),
                    db: Session = Depends(get_db)):
    row, created = progress_service.mark_complete(db, current.user_id, payload.lesson_id)
    response.status_code = 201 if created else 200
    return row


@router.delete("/module/{module_id}", response_model=Message)
def reset_module(module_id: int, current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    progress_service.reset_module_progress(db, current.user_id, module_id)
    return Message(message="Progress reset successfully")


@router.get("/user/{user_id}", response_model=List[ProgressWithLesson])
def user_progress(user_id: int, current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    # leaders only see members of the groups they lead
    if not can_view_member(db, current, user_id):
        raise HTTPException(403, "Access denied")
    return db.scalars(select(UserProgress).where(UserProgress.user_id == user_id).order_by(UserProgress.id)).all()


@router.get("", response_model=List[ProgressWithLesson], dependencies=[Depends(admin_only)])
def all_progress(db: Session = Depends(get_db)):
    return db.scalars(select(UserProgress).order_by(UserProgress.user_id, UserProgress.id)).all()
