import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.api.base import CamelModel, Message
from coursehub.api.certificates import CertificateOut
from coursehub.core.auth import TokenData, admin_or_editor, can_author, get_current_user, get_optional_user
from coursehub.core.config import settings
from coursehub.core.database import get_db
from coursehub.models.orm import Course, Lesson, Module, Quiz, QuizAnswer, QuizQuestion, UserQuizAttempt
from coursehub.services.attempts import submit_quiz
from coursehub.services.authoring import validate_answer_key, validate_owner, validate_single_final_exam

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------- views ----------

class AnswerPublic(CamelModel):
    id: int
    question_id: int
    answer: str


class AnswerKeyed(AnswerPublic):
    is_correct: bool


class QuestionPublic(CamelModel):
    id: int
    quiz_id: int
    question: str
    order_index: int
    answers: List[AnswerPublic]


class QuestionKeyed(QuestionPublic):
    answers: List[AnswerKeyed]


class QuizPublic(CamelModel):
    id: int
    title: str
    course_id: Optional[int] = None
    module_id: Optional[int] = None
    lesson_id: Optional[int] = None
    passing_score: int
    is_final_exam: bool
    questions: List[QuestionPublic] = []


class QuizKeyed(QuizPublic):
    questions: List[QuestionKeyed] = []


class ResponseOut(CamelModel):
    id: int
    question_id: int
    answer_id: Optional[int] = None
    is_correct: bool


class AttemptOut(CamelModel):
    id: int
    user_id: int
    quiz_id: int
    score: int
    passed: bool
    created_at: datetime
    responses: List[ResponseOut] = []


class SubmitResult(CamelModel):
    attempt: AttemptOut
    score: int
    passed: bool
    correct_count: int
    total_questions: int
    attempts_remaining: int
    progress_reset: bool
    certificate: Optional[CertificateOut] = None


# ---------- payloads ----------

class AnswerIn(CamelModel):
    answer: str = Field(min_length=1)
    is_correct: bool = False


class QuestionIn(CamelModel):
    question: str = Field(min_length=1)
    order_index: Optional[int] = None
    answers: List[AnswerIn] = Field(min_length=2)


class QuizIn(CamelModel):
    title: str = Field(min_length=1)
    course_id: Optional[int] = None
    module_id: Optional[int] = None
    lesson_id: Optional[int] = None
    passing_score: Optional[int] = Field(default=None, ge=0, le=100)
    is_final_exam: bool = False
    questions: List[QuestionIn] = []


class QuizUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1)
    passing_score: Optional[int] = Field(default=None, ge=0, le=100)
    is_final_exam: Optional[bool] = None


class QuestionUpdate(CamelModel):
    question: Optional[str] = Field(default=None, min_length=1)
    order_index: Optional[int] = None


class AnswerUpdate(CamelModel):
    answer: Optional[str] = Field(default=None, min_length=1)
    is_correct: Optional[bool] = None


class ResponseIn(CamelModel):
    question_id: int
    answer_id: int


class SubmitIn(CamelModel):
    responses: List[ResponseIn]


# ---------- helpers ----------

def quiz_or_404(db: Session, quiz_id: int) -> Quiz:
    quiz = db.get(Quiz, quiz_id)
    if not quiz:
        raise HTTPException(404, "Quiz not found")
    return quiz


def quiz_view(quiz: Quiz, user: Optional[TokenData]):
    # answer keys are only shown to content authors
    if can_author(user):
        return QuizKeyed.model_validate(quiz)
    return QuizPublic.model_validate(quiz)


def build_question(payload: QuestionIn, order_index: int) -> QuizQuestion:
    validate_answer_key((a.is_correct for a in payload.answers), f"Question '{payload.question}'")
    return QuizQuestion(
        question=payload.question,
        order_index=payload.order_index if payload.order_index is not None else order_index,
        answers=[QuizAnswer(answer=a.answer, is_correct=a.is_correct) for a in payload.answers],
    )


# ---------- learner routes ----------

@router.get("/module/{module_id}")
def quiz_by_module(module_id: int, user: Optional[TokenData] = Depends(get_optional_user),
                   db: Session = Depends(get_db)):
    quiz = db.scalar(
        select(Quiz).where(Quiz.module_id == module_id, Quiz.is_final_exam.is_(False)).order_by(Quiz.id).limit(1)
    )
    if not quiz:
        raise HTTPException(404, "Quiz not found")
    return quiz_view(quiz, user)


@router.get("/course/{course_id}/final")
def final_exam(course_id: int, user: Optional[TokenData] = Depends(get_optional_user),
               db: Session = Depends(get_db)):
    quiz = db.scalar(
        select(Quiz).where(Quiz.course_id == course_id, Quiz.is_final_exam.is_(True)).order_by(Quiz.id).limit(1)
    )
    if not quiz:
        raise HTTPException(404, "Final exam not found")
    return quiz_view(quiz, user)


@router.get("/{quiz_id}")
def get_quiz(quiz_id: int, user: Optional[TokenData] = Depends(get_optional_user), db: Session = Depends(get_db)):
    return quiz_view(quiz_or_404(db, quiz_id), user)


@router.post("/{quiz_id}/submit", response_model=SubmitResult)
def submit(quiz_id: int, payload: SubmitIn, user: TokenData = Depends(get_current_user),
           db: Session = Depends(get_db)):
    outcome = submit_quiz(db, user.user_id, quiz_id, [(r.question_id, r.answer_id) for r in payload.responses])
    return SubmitResult(
        attempt=AttemptOut.model_validate(outcome.attempt),
        score=outcome.grade.score,
        passed=outcome.passed,
        correct_count=outcome.grade.correct_count,
        total_questions=outcome.grade.total_questions,
        attempts_remaining=outcome.attempts_remaining,
        progress_reset=outcome.progress_reset,
        certificate=CertificateOut.model_validate(outcome.certificate) if outcome.certificate else None,
    )


@router.get("/{quiz_id}/attempts", response_model=List[AttemptOut])
def my_attempts(quiz_id: int, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    return db.scalars(
        select(UserQuizAttempt)
        .where(UserQuizAttempt.quiz_id == quiz_id, UserQuizAttempt.user_id == user.user_id)
        .order_by(UserQuizAttempt.created_at.desc(), UserQuizAttempt.id.desc())
    ).all()


# ---------- authoring routes ----------

@router.post("", response_model=QuizKeyed, status_code=201, dependencies=[Depends(admin_or_editor)])
def create_quiz(payload: QuizIn, db: Session = Depends(get_db)):
    validate_owner(payload.course_id, payload.module_id, payload.lesson_id, payload.is_final_exam)
    if payload.is_final_exam:
        validate_single_final_exam(db, payload.course_id)
    for model, owner_id, label in ((Course, payload.course_id, "Course"), (Module, payload.module_id, "Module"),
                                   (Lesson, payload.lesson_id, "Lesson")):
        if owner_id is not None and db.get(model, owner_id) is None:
            raise HTTPException(404, f"{label} not found")
    quiz = Quiz(
        title=payload.title,
        course_id=payload.course_id,
        module_id=payload.module_id,
        lesson_id=payload.lesson_id,
        passing_score=payload.passing_score if payload.passing_score is not None else settings.DEFAULT_PASSING_SCORE,
        is_final_exam=payload.is_final_exam,
        questions=[build_question(q, i) for i, q in enumerate(payload.questions)],
    )
    db.add(quiz)
    db.commit()
    logger.info(f"Created quiz {quiz.id} with {len(quiz.questions)} questions")
    return quiz


@router.put("/questions/{question_id}", response_model=QuestionKeyed, dependencies=[Depends(admin_or_editor)])
def update_question(question_id: int, payload: QuestionUpdate, db: Session = Depends(get_db)):
    question = db.get(QuizQuestion, question_id)
    if not question:
        raise HTTPException(404, "Question not found")
    for key, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(question, key, value)
    db.commit()
    return question


@router.delete("/questions/{question_id}", response_model=Message, dependencies=[Depends(admin_or_editor)])
def delete_question(question_id: int, db: Session = Depends(get_db)):
    question = db.get(QuizQuestion, question_id)
    if not question:
        raise HTTPException(404, "Question not found")
    db.delete(question)
    db.commit()
    return Message(message="Question deleted successfully")


@router.put("/answers/{answer_id}", response_model=AnswerKeyed, dependencies=[Depends(admin_or_editor)])
def update_answer(answer_id: int, payload: AnswerUpdate, db: Session = Depends(get_db)):
    answer = db.get(QuizAnswer, answer_id)
    if not answer:
        raise HTTPException(404, "Answer not found")
    if payload.is_correct is not None:
        flags = [payload.is_correct if a.id == answer.id else a.is_correct for a in answer.question.answers]
        validate_answer_key(flags, "Question")
        answer.is_correct = payload.is_correct
    if payload.answer is not None:
        answer.answer = payload.answer
    db.commit()
    return answer


@router.put("/{quiz_id}", response_model=QuizKeyed, dependencies=[Depends(admin_or_editor)])
def update_quiz(quiz_id: int, payload: QuizUpdate, db: Session = Depends(get_db)):
    quiz = quiz_or_404(db, quiz_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if changes.get("is_final_exam"):
        validate_owner(quiz.course_id, quiz.module_id, quiz.lesson_id, True)
        validate_single_final_exam(db, quiz.course_id, quiz.id)
    for key, value in changes.items():
        setattr(quiz, key, value)
    db.commit()
    return quiz


@router.delete("/{quiz_id}", response_model=Message, dependencies=[Depends(admin_or_editor)])
def delete_quiz(quiz_id: int, db: Session = Depends(get_db)):
    db.delete(quiz_or_404(db, quiz_id))
    db.commit()
    logger.info(f"Deleted quiz {quiz_id}")
    return Message(message="Quiz deleted successfully")


@router.post("/{quiz_id}/questions", response_model=QuestionKeyed, status_code=201,
             dependencies=[Depends(admin_or_editor)])
def add_question(quiz_id: int, payload: QuestionIn, db: Session = Depends(get_db)):
    quiz = quiz_or_404(db, quiz_id)
    question = build_question(payload, len(quiz.questions))
    quiz.questions.append(question)
    db.commit()
    return question
