"""
Quiz administration and attempt lifecycle
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from academy.auth.accounts import display_name
from academy.core.database import generate_id, serialize_mongo, serialize_many
from academy.core.errors import (
    AccessDeniedError, ConflictError, LimitExceededError, NotFoundError, ValidationError,
)
from academy.core.utils import round_half_up
from academy.courses.database import get_course, require_course_access
from academy.quiz.grading import grade_attempt, shuffle_questions, strip_answers, total_points
from academy.quiz.models import QuizCreate, QuizUpdate

logger = logging.getLogger(__name__)

UNLIMITED_ATTEMPTS = -1


# ==================== HELPERS ====================

def _normalize_questions(questions: List[dict]) -> List[dict]:
    """Fill default ids (q1, q2, ...) and points, reject duplicate ids"""
    normalized = []
    for index, question in enumerate(questions, start=1):
        question = dict(question)
        question["id"] = question.get("id") or f"q{index}"
        if question.get("points") is None:
            question["points"] = 1
        normalized.append(question)

    ids = [q["id"] for q in normalized]
    if len(ids) != len(set(ids)):
        raise ValidationError("Question ids must be unique within a quiz")
    return normalized


def _answer_pairs(answers: Iterable[dict]):
    for answer in answers:
        value = answer.get("user_answer")
        if value is None:
            value = answer.get("answer")
        yield answer.get("question_id"), value


async def _get_quiz_doc(db: AsyncIOMotorDatabase, quiz_id: str) -> dict:
    quiz = await db.quizzes.find_one({"quiz_id": quiz_id})
    if not quiz:
        raise NotFoundError("Quiz")
    return quiz


async def next_attempt_number(db: AsyncIOMotorDatabase, quiz_id: str, user_id: str) -> int:
    """Atomically allocate the next attempt number for (quiz, user)"""
    for retry in range(2):
        try:
            counter = await db.quiz_attempt_counters.find_one_and_update(
                {"_id": f"{quiz_id}:{user_id}"},
                {"$inc": {"seq": 1}, "$setOnInsert": {"quiz_id": quiz_id, "user_id": user_id}},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
            return counter["seq"]
        except DuplicateKeyError:
            # Two first-time upserts raced; the loser retries as a plain $inc
            if retry:
                raise
    raise ConflictError("Could not allocate attempt number")


# ==================== ADMINISTRATION ====================

async def create_quiz(db: AsyncIOMotorDatabase, data: QuizCreate, created_by: str) -> dict:
    await get_course(db, data.course_id)

    payload = data.model_dump(mode="json")
    questions = _normalize_questions(payload.pop("questions"))
    now = datetime.utcnow()

    quiz = {
        **payload,
        "quiz_id": generate_id("QUZ"),
        "questions": questions,
        "total_points": total_points(questions),
        "created_by": created_by,
        "created_at": now,
        "updated_at": now,
    }
    await db.quizzes.insert_one(quiz)

    logger.info("Quiz created: %s for course %s", quiz["quiz_id"], data.course_id)
    return serialize_mongo(quiz)


async def update_quiz(db: AsyncIOMotorDatabase, quiz_id: str, data: QuizUpdate) -> dict:
    updates = {
        k: v for k, v in data.model_dump(mode="json", exclude_unset=True).items()
        if v is not None
    }
    if "questions" in updates:
        updates["questions"] = _normalize_questions(updates["questions"])
        updates["total_points"] = total_points(updates["questions"])
    updates["updated_at"] = datetime.utcnow()

    quiz = await db.quizzes.find_one_and_update(
        {"quiz_id": quiz_id},
        {"$set": updates},
        return_document=ReturnDocument.AFTER
    )
    if not quiz:
        raise NotFoundError("Quiz")
    return serialize_mongo(quiz)


async def set_published(db: AsyncIOMotorDatabase, quiz_id: str, is_published: bool) -> dict:
    quiz = await db.quizzes.find_one_and_update(
        {"quiz_id": quiz_id},
        {"$set": {"is_published": is_published, "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER
    )
    if not quiz:
        raise NotFoundError("Quiz")
    logger.info("Quiz %s %s", quiz_id, "published" if is_published else "unpublished")
    return serialize_mongo(quiz)


async def delete_quiz(db: AsyncIOMotorDatabase, quiz_id: str) -> int:
    """Delete a quiz with its attempts and counters; returns attempts removed"""
    result = await db.quizzes.delete_one({"quiz_id": quiz_id})
    if result.deleted_count == 0:
        raise NotFoundError("Quiz")

    attempts = await db.quiz_attempts.delete_many({"quiz_id": quiz_id})
    await db.quiz_attempt_counters.delete_many({"quiz_id": quiz_id})
    logger.info("Quiz deleted: %s (%d attempts)", quiz_id, attempts.deleted_count)
    return attempts.deleted_count


async def get_quiz(db: AsyncIOMotorDatabase, quiz_id: str) -> dict:
    return serialize_mongo(await _get_quiz_doc(db, quiz_id))


async def list_all_quizzes(db: AsyncIOMotorDatabase) -> List[dict]:
    quizzes = await db.quizzes.find({}).sort("created_at", -1).to_list(length=None)
    result = []
    for quiz in quizzes:
        quiz = serialize_mongo(quiz)
        quiz["question_count"] = len(quiz.get("questions", []))
        quiz["attempt_count"] = await db.quiz_attempts.count_documents({"quiz_id": quiz["quiz_id"]})
        result.append(quiz)
    return result


async def list_course_quizzes(db: AsyncIOMotorDatabase, course_id: str, user: dict) -> List[dict]:
    """Published quizzes (plus the caller's drafts) without answers"""
    await get_course(db, course_id)
    require_course_access(user, course_id)

    quizzes = await db.quizzes.find({
        "course_id": course_id,
        "$or": [{"is_published": True}, {"created_by": user["user_id"]}],
    }).to_list(length=None)

    result = []
    for quiz in quizzes:
        quiz = serialize_mongo(quiz)
        quiz["questions"] = strip_answers(quiz.get("questions", []))
        quiz["user_attempts"] = await db.quiz_attempts.count_documents(
            {"quiz_id": quiz["quiz_id"], "user_id": user["user_id"]}
        )
        result.append(quiz)
    return result


# ==================== ATTEMPTS ====================

async def start_attempt(db: AsyncIOMotorDatabase, quiz_id: str, user: dict) -> dict:
    quiz = await _get_quiz_doc(db, quiz_id)

    if not quiz.get("is_published") and quiz.get("created_by") != user["user_id"]:
        raise AccessDeniedError("Quiz is not published")

    require_course_access(user, quiz["course_id"])

    max_attempts = quiz.get("attempts", 3)
    prior = await db.quiz_attempts.count_documents({"quiz_id": quiz_id, "user_id": user["user_id"]})
    if max_attempts != UNLIMITED_ATTEMPTS and prior >= max_attempts:
        raise LimitExceededError("Maximum attempts reached for this quiz")

    questions = strip_answers(quiz.get("questions", []))
    if quiz.get("randomize_questions"):
        questions = shuffle_questions(questions)

    return {
        "quiz": {
            "quiz_id": quiz["quiz_id"],
            "course_id": quiz["course_id"],
            "title": quiz.get("title"),
            "description": quiz.get("description", ""),
            "instructions": quiz.get("instructions", ""),
            "duration": quiz.get("duration", 30),
            "passing_score": quiz.get("passing_score", 70),
            "total_points": quiz.get("total_points", 0),
            "questions": questions,
        },
        "current_attempt": prior + 1,
        "max_attempts": max_attempts,
        "started_at": datetime.utcnow(),
    }


async def submit_attempt(
    db: AsyncIOMotorDatabase,
    quiz_id: str,
    user_id: str,
    answers: List[dict],
    time_spent: int = 0,
    started_at: Optional[datetime] = None,
) -> dict:
    # Attempt cap is checked in start_attempt only
    quiz = await _get_quiz_doc(db, quiz_id)
    questions = quiz.get("questions", [])

    graded = grade_attempt(questions, _answer_pairs(answers), quiz.get("passing_score", 70))
    attempt_number = await next_attempt_number(db, quiz_id, user_id)
    now = datetime.utcnow()

    attempt = {
        "attempt_id": generate_id("ATT"),
        "quiz_id": quiz_id,
        "user_id": user_id,
        "course_id": quiz["course_id"],
        "answers": graded["answers"],
        "score": graded["score"],
        "total_points": graded["total_points"],
        "percentage": graded["percentage"],
        "passed": graded["passed"],
        "time_spent": time_spent,
        "started_at": started_at or now,
        "submitted_at": now,
        "attempt_number": attempt_number,
    }
    try:
        await db.quiz_attempts.insert_one(attempt)
    except DuplicateKeyError:
        raise ConflictError("Attempt already recorded")

    logger.info(
        "Quiz submitted: %s by %s, attempt %d, %d%% (%s)",
        quiz_id, user_id, attempt_number, graded["percentage"],
        "passed" if graded["passed"] else "failed"
    )

    response = {
        "attempt_id": attempt["attempt_id"],
        "attempt_number": attempt_number,
        "score": graded["score"],
        "total_points": graded["total_points"],
        "percentage": graded["percentage"],
        "passed": graded["passed"],
    }

    if quiz.get("show_results"):
        reveal = quiz.get("show_correct_answers", False)
        by_id = {q["id"]: q for q in questions}
        results = []
        for answer in graded["answers"]:
            entry = dict(answer)
            if reveal:
                question = by_id[answer["question_id"]]
                entry["correct_answer"] = question.get("correct_answer")
                entry["explanation"] = question.get("explanation")
            results.append(entry)
        response["results"] = {"answers": results, "passing_score": quiz.get("passing_score", 70)}

    return response


async def list_user_attempts(db: AsyncIOMotorDatabase, course_id: str, user_id: str) -> List[dict]:
    attempts = await db.quiz_attempts.find(
        {"course_id": course_id, "user_id": user_id}
    ).sort([("submitted_at", -1), ("attempt_number", -1)]).to_list(length=None)

    quiz_ids = list({a["quiz_id"] for a in attempts})
    titles = {
        q["quiz_id"]: q.get("title", "")
        for q in await db.quizzes.find({"quiz_id": {"$in": quiz_ids}}).to_list(length=None)
    }

    result = serialize_many(attempts)
    for attempt in result:
        attempt["quiz_title"] = titles.get(attempt["quiz_id"], "")
    return result


# ==================== ANALYTICS ====================

async def compute_results_analytics(db: AsyncIOMotorDatabase, quiz_id: str) -> dict:
    quiz = await _get_quiz_doc(db, quiz_id)

    pipeline = [
        {"$match": {"quiz_id": quiz_id}},
        {"$group": {
            "_id": None,
            "total_attempts": {"$sum": 1},
            "participants": {"$addToSet": "$user_id"},
            "average_score": {"$avg": "$percentage"},
            "average_time": {"$avg": "$time_spent"},
            "highest_score": {"$max": "$percentage"},
            "lowest_score": {"$min": "$percentage"},
        }},
    ]
    groups = await db.quiz_attempts.aggregate(pipeline).to_list(None)
    stats = groups[0] if groups else {}
    total_attempts = stats.get("total_attempts", 0)
    passed = await db.quiz_attempts.count_documents({"quiz_id": quiz_id, "passed": True})

    attempts = await db.quiz_attempts.find({"quiz_id": quiz_id}).sort("submitted_at", -1).to_list(length=None)
    user_ids = list({a["user_id"] for a in attempts})
    users = {
        u["user_id"]: u
        for u in await db.users.find({"user_id": {"$in": user_ids}}).to_list(length=None)
    }

    listing = []
    for attempt in attempts:
        student = users.get(attempt["user_id"])
        listing.append({
            "attempt_id": attempt["attempt_id"],
            "user_id": attempt["user_id"],
            "student_name": display_name(student),
            "student_email": student.get("email", "") if student else "",
            "attempt_number": attempt["attempt_number"],
            "score": attempt["score"],
            "percentage": attempt["percentage"],
            "passed": attempt["passed"],
            "time_spent": attempt.get("time_spent", 0),
            "submitted_at": attempt.get("submitted_at"),
        })

    return {
        "quiz": {
            "quiz_id": quiz["quiz_id"],
            "title": quiz.get("title"),
            "passing_score": quiz.get("passing_score", 70),
            "total_points": quiz.get("total_points", 0),
        },
        "analytics": {
            "total_participants": len(stats.get("participants", [])),
            "total_attempts": total_attempts,
            "average_score": round(stats.get("average_score") or 0, 1),
            "pass_rate": round(passed / total_attempts * 100, 1) if total_attempts else 0,
            "average_time": round_half_up(stats.get("average_time") or 0),
            "highest_score": stats.get("highest_score") or 0,
            "lowest_score": stats.get("lowest_score") or 0,
        },
        "attempts": listing,
    }
