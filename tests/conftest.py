import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "testing"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient

from coursehub.core.auth import create_token
from coursehub.core.database import SessionLocal, engine
from coursehub.main import app
from coursehub.models.orm import (
    Base, Course, Lesson, Module, Profile, Quiz, QuizAnswer, QuizQuestion, User, UserRole,
)


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


def make_user(db, email, roles=("user",), user_type="employee"):
    user = User(email=email, password_hash="not-a-real-hash")
    user.profile = Profile(full_name=email.split("@")[0].title(), email=email, user_type=user_type)
    user.roles = [UserRole(role=r) for r in roles]
    db.add(user)
    db.commit()
    return user


def auth_header(user):
    return {"Authorization": f"Bearer {create_token(user.id, user.email, user.role_names)}"}


@pytest.fixture
def learner(db):
    return make_user(db, "learner@example.com")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", roles=("admin", "user"))


@pytest.fixture
def editor(db):
    return make_user(db, "editor@example.com", roles=("editor", "user"))


@pytest.fixture
def learner_hdr(learner):
    return auth_header(learner)


@pytest.fixture
def admin_hdr(admin):
    return auth_header(admin)


@pytest.fixture
def editor_hdr(editor):
    return auth_header(editor)


def make_quiz(db, n_questions=3, passing_score=70, **owner):
    """Quiz whose first answer on every question is the correct one."""
    quiz = Quiz(title="Quiz", passing_score=passing_score, **owner)
    for i in range(n_questions):
        quiz.questions.append(QuizQuestion(
            question=f"Q{i + 1}",
            order_index=i,
            answers=[QuizAnswer(answer="right", is_correct=True), QuizAnswer(answer="wrong", is_correct=False)],
        ))
    db.add(quiz)
    db.commit()
    return quiz


def answer_sheet(quiz, n_correct):
    """(questionId, answerId) payload with the first ``n_correct`` questions answered right."""
    sheet = []
    for i, q in enumerate(quiz.questions):
        right, wrong = q.answers[0], q.answers[1]
        sheet.append({"questionId": q.id, "answerId": (right if i < n_correct else wrong).id})
    return {"responses": sheet}


@pytest.fixture
def course(db):
    """Course with one module of two lessons, a module quiz and a final exam."""
    course = Course(title="Onboarding", description="Basics")
    db.add(course)
    db.flush()
    module = Module(course_id=course.id, title="Week 1", order_index=0)
    db.add(module)
    db.flush()
    db.add_all([
        Lesson(course_id=course.id, module_id=module.id, title="Intro", order_index=0),
        Lesson(course_id=course.id, module_id=module.id, title="Tools", order_index=1),
    ])
    db.commit()
    make_quiz(db, n_questions=3, module_id=module.id)
    make_quiz(db, n_questions=2, course_id=course.id, is_final_exam=True)
    return course


@pytest.fixture
def module(db, course):
    return db.query(Module).filter_by(course_id=course.id).one()


@pytest.fixture
def lessons(db, course):
    return db.query(Lesson).filter_by(course_id=course.id).order_by(Lesson.order_index).all()


@pytest.fixture
def module_quiz(db, module):
    return db.query(Quiz).filter_by(module_id=module.id).one()


@pytest.fixture
def final_exam(db, course):
    return db.query(Quiz).filter_by(course_id=course.id, is_final_exam=True).one()
