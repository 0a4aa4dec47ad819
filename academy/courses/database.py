from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Iterator, List, Optional

from academy.auth.models import UserType
from academy.core.errors import AccessDeniedError, NotFoundError

# ==================== CURRICULUM HELPERS ====================

def iter_lessons(course: dict) -> Iterator[dict]:
    for topic in course.get("curriculum", []):
        for lesson in topic.get("lessons", []):
            yield lesson

def count_lessons(course: dict) -> int:
    return sum(len(topic.get("lessons", [])) for topic in course.get("curriculum", []))

def find_lesson(course: dict, lesson_id: str) -> Optional[dict]:
    return next((lesson for lesson in iter_lessons(course) if lesson.get("id") == lesson_id), None)

def effective_price(course: dict) -> float:
    """Price a buyer pays right now"""
    if course.get("is_free"):
        return 0
    if course.get("has_discount") and course.get("discount_price") is not None:
        return course["discount_price"]
    return course.get("price", 0)

# ==================== COURSE LOOKUPS ====================

async def get_course(db: AsyncIOMotorDatabase, course_id: str) -> dict:
    course = await db.courses.find_one({"course_id": course_id})
    if not course:
        raise NotFoundError("Course")
    return course

async def get_courses(db: AsyncIOMotorDatabase, course_ids: List[str]) -> List[dict]:
    return await db.courses.find({"course_id": {"$in": course_ids}}).to_list(length=None)

# ==================== PURCHASE CHECKS ====================

def has_purchased(user: dict, course_id: str) -> bool:
    return any(
        purchase.get("course_id") == course_id
        for purchase in user.get("purchased_courses", [])
    )

def is_admin(user: dict) -> bool:
    return user.get("user_type") == UserType.ADMIN.value

def require_course_access(user: dict, course_id: str, allow_admin: bool = True):
    """Raise unless the user bought the course (admins pass when allowed)"""
    if has_purchased(user, course_id):
        return
    if allow_admin and is_admin(user):
        return
    raise AccessDeniedError("Course not purchased")
