"""
Per-course lesson progress

Each write is a single upsert with per-field operators:
watch time only rises ($max), completed lessons are a set ($addToSet).
The percentage is written afterwards with a compare-and-set on the size of
the completed set, so concurrent writers converge on the same value.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from academy.core.database import serialize_mongo
from academy.core.errors import NotFoundError, ValidationError
from academy.core.utils import percentage_of
from academy.courses.database import (
    count_lessons, find_lesson, get_course, has_purchased, is_admin, require_course_access,
)

logger = logging.getLogger(__name__)

# Upper bound for one lesson's watch time, in seconds (30 days)
MAX_WATCH_TIME = 30 * 24 * 60 * 60


def _validate_lesson_key(lesson_id: str):
    # lesson ids become field names under watch_time
    if not lesson_id or "." in lesson_id or lesson_id.startswith("$"):
        raise ValidationError("Invalid lesson id")


def _with_totals(progress: dict, total_lessons: int) -> dict:
    progress = serialize_mongo(progress)
    progress.setdefault("completed_lessons", [])
    progress.setdefault("watch_time", {})
    progress["total_watch_time"] = sum(progress["watch_time"].values())
    progress["total_lessons"] = total_lessons
    return progress


async def _upsert(db: AsyncIOMotorDatabase, key: dict, update: dict) -> dict:
    for retry in range(2):
        try:
            return await db.progress.find_one_and_update(
                key, update, upsert=True, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            # Concurrent first write created the record; the retry updates it
            if retry:
                raise


async def _ensure_progress(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> dict:
    now = datetime.utcnow()
    return await _upsert(db, {"user_id": user_id, "course_id": course_id}, {
        "$setOnInsert": {
            "completed_lessons": [],
            "watch_time": {},
            "progress_percentage": 0,
            "current_lesson": None,
            "last_accessed": now,
            "certificate_issued": False,
            "created_at": now,
        }
    })


# ==================== RECORD ====================

async def record_progress(
    db: AsyncIOMotorDatabase,
    user_id: str,
    course_id: str,
    lesson_id: str,
    watch_time: Optional[float] = None,
    completed: bool = False,
) -> dict:
    _validate_lesson_key(lesson_id)
    if watch_time is not None:
        if not math.isfinite(watch_time):
            raise ValidationError("Watch time must be a finite number")
        if watch_time < 0:
            raise ValidationError("Watch time cannot be negative")
        if watch_time > MAX_WATCH_TIME:
            raise ValidationError("Watch time is out of range")

    course = await get_course(db, course_id)
    if find_lesson(course, lesson_id) is None:
        raise NotFoundError("Lesson")
    total_lessons = count_lessons(course)

    now = datetime.utcnow()
    key = {"user_id": user_id, "course_id": course_id}
    on_insert = {"progress_percentage": 0, "certificate_issued": False, "created_at": now}
    update = {
        "$set": {"current_lesson": lesson_id, "last_accessed": now},
        "$setOnInsert": on_insert,
    }

    if watch_time is not None:
        update["$max"] = {f"watch_time.{lesson_id}": int(math.floor(watch_time))}
    else:
        on_insert["watch_time"] = {}

    if completed:
        update["$addToSet"] = {"completed_lessons": lesson_id}
    else:
        on_insert["completed_lessons"] = []

    progress = await _upsert(db, key, update)

    completed_count = len(progress.get("completed_lessons", []))
    percentage = min(percentage_of(completed_count, total_lessons), 100)

    if progress.get("progress_percentage") != percentage:
        result = await db.progress.update_one(
            {**key, "completed_lessons": {"$size": completed_count}},
            {"$set": {"progress_percentage": percentage}}
        )
        if result.matched_count:
            progress["progress_percentage"] = percentage
        else:
            # A concurrent writer grew the set and owns the newer percentage
            progress = await db.progress.find_one(key)

    if completed and percentage == 100:
        logger.info("Course %s completed by %s", course_id, user_id)

    return _with_totals(progress, total_lessons)


# ==================== VIEWS ====================

async def get_course_with_progress(db: AsyncIOMotorDatabase, user: dict, course_id: str) -> dict:
    course = await get_course(db, course_id)
    require_course_access(user, course_id)

    progress = await _ensure_progress(db, user["user_id"], course_id)
    total_lessons = count_lessons(course)

    course = serialize_mongo(course)
    course["total_lessons"] = total_lessons
    return {"course": course, "progress": _with_totals(progress, total_lessons)}


async def get_lesson_video(db: AsyncIOMotorDatabase, user: dict, course_id: str, lesson_id: str) -> dict:
    course = await get_course(db, course_id)
    lesson = find_lesson(course, lesson_id)
    if lesson is None:
        raise NotFoundError("Lesson")

    if not lesson.get("is_free"):
        require_course_access(user, course_id)

    if not lesson.get("video_url"):
        raise NotFoundError("Video")

    return {
        "lesson_id": lesson["id"],
        "title": lesson.get("title", ""),
        "video_url": lesson["video_url"],
        "video_provider": lesson.get("video_provider", "none"),
        "video_id": lesson.get("video_id"),
        "duration": lesson.get("duration"),
        "duration_seconds": lesson.get("duration_seconds"),
        "resources": lesson.get("resources", []),
    }


async def check_access(db: AsyncIOMotorDatabase, user: dict, course_id: str) -> dict:
    course = await get_course(db, course_id)
    purchased = has_purchased(user, course_id)
    return {
        "course_id": course_id,
        "has_access": purchased or is_admin(user) or bool(course.get("is_free")),
        "has_purchased": purchased,
        "is_free": bool(course.get("is_free")),
    }
