"""
Scoring of quiz submissions against the stored answer key.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from coursehub.models.orm import QuizQuestion
from coursehub.services.errors import PreconditionError


@dataclass
class ResponseResult:
    question_id: int
    answer_id: int
    is_correct: bool


@dataclass
class GradeResult:
    score: int
    correct_count: int
    total_questions: int
    results: List[ResponseResult] = field(default_factory=list)


def correct_answer_id(question: QuizQuestion) -> Optional[int]:
    """Id of the first answer flagged correct, or None when the key is missing."""
    for answer in sorted(question.answers, key=lambda a: a.id):
        if answer.is_correct:
            return answer.id
    return None


def percentage(correct: int, total: int) -> int:
    """round(correct / total * 100), halves rounded up."""
    if total <= 0:
        return 0
    return (200 * correct + total) // (2 * total)


def is_passing(score: int, passing_score: int) -> bool:
    return score >= passing_score


def grade_submission(questions: Sequence[QuizQuestion], responses: Iterable[Tuple[int, int]]) -> GradeResult:
    """Grade (question_id, answer_id) pairs.

    Every question of the quiz counts toward the denominator, so an omitted
    question lowers the score the same way a wrong answer does.
    """
    if not questions:
        raise PreconditionError("Quiz has no questions")

    by_id: Dict[int, QuizQuestion] = {q.id: q for q in questions}
    seen = set()
    results: List[ResponseResult] = []
    correct = 0
    for question_id, answer_id in responses:
        question = by_id.get(question_id)
        if question is None:
            raise PreconditionError(f"Question {question_id} does not belong to this quiz")
        if question_id in seen:
            raise PreconditionError(f"Question {question_id} answered more than once")
        seen.add(question_id)
        if answer_id not in {a.id for a in question.answers}:
            raise PreconditionError(f"Answer {answer_id} does not belong to question {question_id}")

        ok = answer_id == correct_answer_id(question)
        if ok:
            correct += 1
        results.append(ResponseResult(question_id=question_id, answer_id=answer_id, is_correct=ok))

    return GradeResult(
        score=percentage(correct, len(questions)),
        correct_count=correct,
        total_questions=len(questions),
        results=results,
    )
