import enum
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    BigInteger, Integer, String, Text, Boolean, ForeignKey, DateTime,
    Index, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class UserType(str, enum.Enum):
    EMPLOYEE = "employee"
    CLIENT = "client"


class CourseTarget(str, enum.Enum):
    BOTH = "both"
    EMPLOYEE = "employee"
    CLIENT = "client"


# ========== Accounts ==========

class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    profile: Mapped[Optional["Profile"]] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    roles: Mapped[List["UserRole"]] = relationship(back_populates="user", cascade="all, delete-orphan")
    progress: Mapped[List["UserProgress"]] = relationship(cascade="all, delete")
    attempts: Mapped[List["UserQuizAttempt"]] = relationship(cascade="all, delete")
    enrollments: Mapped[List["Enrollment"]] = relationship(back_populates="user", cascade="all, delete")
    certificates: Mapped[List["Certificate"]] = relationship(back_populates="user", cascade="all, delete")
    memberships: Mapped[List["GroupMember"]] = relationship(back_populates="user", cascade="all, delete")
    led_groups: Mapped[List["Group"]] = relationship(back_populates="leader")

    @property
    def role_names(self) -> List[str]:
        return sorted(r.role for r in self.roles)


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_role"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)

    user: Mapped["User"] = relationship(back_populates="roles")


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    user_type: Mapped[Optional[str]] = mapped_column(String(20))
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user: Mapped["User"] = relationship(back_populates="profile")


class Group(Base):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    leader_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    leader: Mapped[Optional["User"]] = relationship(back_populates="led_groups")
    members: Mapped[List["GroupMember"]] = relationship(
        back_populates="group", cascade="all, delete", order_by="GroupMember.id"
    )


class GroupMember(Base):
    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    group_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    group: Mapped["Group"] = relationship(back_populates="members")
    user: Mapped["User"] = relationship(back_populates="memberships")


# ========== Catalog ==========

class Course(Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(500))
    duration: Mapped[Optional[str]] = mapped_column(String(50))
    course_target: Mapped[str] = mapped_column(String(20), default=CourseTarget.BOTH.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    modules: Mapped[List["Module"]] = relationship(
        back_populates="course", cascade="all, delete",
        order_by=lambda: (Module.order_index, Module.id),
    )
    lessons: Mapped[List["Lesson"]] = relationship(
        back_populates="course", cascade="all, delete",
        order_by=lambda: (Lesson.order_index, Lesson.id),
    )
    quizzes: Mapped[List["Quiz"]] = relationship(back_populates="course", cascade="all, delete")
    enrollments: Mapped[List["Enrollment"]] = relationship(back_populates="course", cascade="all, delete")
    certificates: Mapped[List["Certificate"]] = relationship(back_populates="course", cascade="all, delete")
    access_rules: Mapped[List["CourseAccess"]] = relationship(
        back_populates="course", cascade="all, delete-orphan", order_by="CourseAccess.user_type"
    )

    @property
    def access_user_types(self) -> List[str]:
        return [rule.user_type for rule in self.access_rules]

    def is_open_to(self, user_type: Optional[str]) -> bool:
        """Stored access rules win over ``course_target`` when a course has any."""
        if user_type is None:
            return True
        if self.access_rules:
            return user_type in self.access_user_types
        return self.course_target in (CourseTarget.BOTH.value, user_type)


class CourseAccess(Base):
    __tablename__ = "course_access"
    __table_args__ = (UniqueConstraint("course_id", "user_type", name="uq_course_access"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    course_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    user_type: Mapped[str] = mapped_column(String(20), nullable=False)

    course: Mapped["Course"] = relationship(back_populates="access_rules")


class Module(Base):
    __tablename__ = "modules"
    __table_args__ = (Index("idx_modules_course", "course_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    course_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    course: Mapped["Course"] = relationship(back_populates="modules")
    lessons: Mapped[List["Lesson"]] = relationship(
        back_populates="module", cascade="all, delete",
        order_by=lambda: (Lesson.order_index, Lesson.id),
    )
    quizzes: Mapped[List["Quiz"]] = relationship(back_populates="module", cascade="all, delete")


class Lesson(Base):
    __tablename__ = "lessons"
    __table_args__ = (
        Index("idx_lessons_course", "course_id"),
        Index("idx_lessons_module", "module_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    course_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    module_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("modules.id", ondelete="CASCADE"))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    youtube_url: Mapped[Optional[str]] = mapped_column(String(500))
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer)

    course: Mapped["Course"] = relationship(back_populates="lessons")
    module: Mapped[Optional["Module"]] = relationship(back_populates="lessons")
    quizzes: Mapped[List["Quiz"]] = relationship(back_populates="lesson", cascade="all, delete")
    progress: Mapped[List["UserProgress"]] = relationship(back_populates="lesson", cascade="all, delete")


# ========== Quizzes ==========

class Quiz(Base):
    __tablename__ = "quizzes"
    __table_args__ = (
        Index("idx_quizzes_course", "course_id"),
        Index("idx_quizzes_module", "module_id"),
        CheckConstraint("passing_score >= 0 AND passing_score <= 100", name="ck_quiz_passing_score"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    course_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("courses.id", ondelete="CASCADE"))
    module_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("modules.id", ondelete="CASCADE"))
    lesson_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("lessons.id", ondelete="CASCADE"))
    passing_score: Mapped[int] = mapped_column(Integer, default=70, nullable=False)
    is_final_exam: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    course: Mapped[Optional["Course"]] = relationship(back_populates="quizzes")
    module: Mapped[Optional["Module"]] = relationship(back_populates="quizzes")
    lesson: Mapped[Optional["Lesson"]] = relationship(back_populates="quizzes")
    questions: Mapped[List["QuizQuestion"]] = relationship(
        back_populates="quiz", cascade="all, delete-orphan",
        order_by=lambda: (QuizQuestion.order_index, QuizQuestion.id),
    )
    attempts: Mapped[List["UserQuizAttempt"]] = relationship(back_populates="quiz", cascade="all, delete")


class QuizQuestion(Base):
    __tablename__ = "quiz_questions"
    __table_args__ = (Index("idx_qq_quiz", "quiz_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    quiz_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    quiz: Mapped["Quiz"] = relationship(back_populates="questions")
    answers: Mapped[List["QuizAnswer"]] = relationship(
        back_populates="question", cascade="all, delete-orphan", order_by="QuizAnswer.id"
    )


class QuizAnswer(Base):
    __tablename__ = "quiz_answers"
    __table_args__ = (Index("idx_qa_question", "question_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    question_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("quiz_questions.id", ondelete="CASCADE"), nullable=False
    )
    answer: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    question: Mapped["QuizQuestion"] = relationship(back_populates="answers")


class UserQuizAttempt(Base):
    __tablename__ = "user_quiz_attempts"
    __table_args__ = (
        Index("idx_attempts_user_quiz", "user_id", "quiz_id"),
        CheckConstraint("score >= 0 AND score <= 100", name="ck_attempt_score"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    quiz_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    quiz: Mapped["Quiz"] = relationship(back_populates="attempts")
    responses: Mapped[List["UserQuizResponse"]] = relationship(
        back_populates="attempt", cascade="all, delete-orphan", order_by="UserQuizResponse.id"
    )


class UserQuizResponse(Base):
    __tablename__ = "user_quiz_responses"
    __table_args__ = (Index("idx_responses_attempt", "attempt_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    attempt_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("user_quiz_attempts.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("quiz_questions.id", ondelete="CASCADE"), nullable=False
    )
    answer_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("quiz_answers.id", ondelete="SET NULL"))
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)

    attempt: Mapped["UserQuizAttempt"] = relationship(back_populates="responses")


# ========== Learner state ==========

class UserProgress(Base):
    __tablename__ = "user_progress"
    __table_args__ = (UniqueConstraint("user_id", "lesson_id", name="uq_user_progress_lesson"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    lesson_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    lesson: Mapped["Lesson"] = relationship(back_populates="progress")


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("user_id", "course_id", name="uq_enrollment"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    enrolled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped["User"] = relationship(back_populates="enrollments")
    course: Mapped["Course"] = relationship(back_populates="enrollments")


class Certificate(Base):
    __tablename__ = "certificates"
    __table_args__ = (
        UniqueConstraint("certificate_number", name="uq_certificate_number"),
        UniqueConstraint("user_id", "course_id", name="uq_certificate_user_course"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    certificate_number: Mapped[str] = mapped_column(String(64), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped["User"] = relationship(back_populates="certificates")
    course: Mapped["Course"] = relationship(back_populates="certificates")
