"""
Quiz grading rules

Pure functions over quiz question documents. No database access here so the
rules can be checked in isolation.
"""

import random
from typing import Any, Iterable, List, Tuple

from academy.core.utils import percentage_of

SHORT_ANSWER = "short-answer"
HIDDEN_FIELDS = ("correct_answer", "explanation")


def values_equal(expected: Any, given: Any) -> bool:
    """Exact equality; booleans never match numbers"""
    if isinstance(expected, bool) or isinstance(given, bool):
        return isinstance(expected, bool) and isinstance(given, bool) and expected == given
    return expected == given


def _normalize(text: str) -> str:
    return text.strip().lower()


def grade_short_answer(correct_answer: Any, user_answer: Any) -> bool:
    if not isinstance(user_answer, str):
        return False
    candidates = correct_answer if isinstance(correct_answer, list) else [correct_answer]
    given = _normalize(user_answer)
    return any(isinstance(c, str) and _normalize(c) == given for c in candidates)


def grade_answer(question: dict, user_answer: Any) -> bool:
    if user_answer is None:
        return False
    if question.get("type") == SHORT_ANSWER:
        return grade_short_answer(question.get("correct_answer"), user_answer)
    return values_equal(question.get("correct_answer"), user_answer)


def total_points(questions: Iterable[dict]) -> int:
    return sum(q.get("points", 1) for q in questions)


def grade_attempt(questions: List[dict], answers: Iterable[Tuple[str, Any]], passing_score: int) -> dict:
    """
    Grade (question_id, user_answer) pairs against the quiz questions.

    Answers for unknown question ids are dropped; a repeated question id only
    counts once. Total points always cover every question in the quiz.
    """
    by_id = {q["id"]: q for q in questions}
    graded = []
    seen = set()
    score = 0

    for question_id, user_answer in answers:
        question = by_id.get(question_id)
        if question is None or question_id in seen:
            continue
        seen.add(question_id)

        is_correct = grade_answer(question, user_answer)
        points_earned = question.get("points", 1) if is_correct else 0
        score += points_earned
        graded.append({
            "question_id": question_id,
            "user_answer": user_answer,
            "is_correct": is_correct,
            "points_earned": points_earned,
        })

    possible = total_points(questions)
    percentage = percentage_of(score, possible)
    return {
        "answers": graded,
        "score": score,
        "total_points": possible,
        "percentage": percentage,
        "passed": percentage >= passing_score,
    }


def strip_answers(questions: List[dict]) -> List[dict]:
    """Questions as shown to a student taking the quiz"""
    return [{k: v for k, v in q.items() if k not in HIDDEN_FIELDS} for q in questions]


def shuffle_questions(questions: List[dict], rng: random.Random = None) -> List[dict]:
    shuffled = list(questions)
    (rng or random).shuffle(shuffled)
    return shuffled
