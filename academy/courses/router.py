"""
Course catalog (read side)
Mounted at /api/courses
"""

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional

from academy.auth.dependencies import get_current_user
from academy.core.database import get_db, serialize_many, serialize_mongo
from academy.courses.database import get_course, count_lessons, has_purchased

router = APIRouter(tags=["Courses"])

CATALOG_PROJECTION = {"_id": 0, "curriculum.lessons.video_url": 0, "curriculum.lessons.video_id": 0}


@router.get("/")
async def list_courses(
    category: Optional[str] = None,
    level: Optional[str] = None,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    query = {}
    if category:
        query["category"] = category
    if level:
        query["level"] = level

    courses = await db.courses.find(query, CATALOG_PROJECTION).to_list(length=200)
    for course in courses:
        course["total_lessons"] = count_lessons(course)
    return {"success": True, "courses": serialize_many(courses)}


@router.get("/{course_id}")
async def get_course_endpoint(course_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    course = serialize_mongo(await get_course(db, course_id))
    for topic in course.get("curriculum", []):
        for lesson in topic.get("lessons", []):
            # Video references are only served to buyers through /api/video
            lesson.pop("video_url", None)
            lesson.pop("video_id", None)
    course["total_lessons"] = count_lessons(course)
    return {"success": True, "course": course}


@router.get("/{course_id}/purchased")
async def check_purchased(
    course_id: str,
    user: dict = Depends(get_current_user)
):
    return {"success": True, "has_purchased": has_purchased(user, course_id)}
