"""
Video playback and lesson progress
Mounted at /api/video
"""

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field
from typing import Optional

from academy.auth.dependencies import get_current_user
from academy.core.database import get_db
from academy.courses.database import require_course_access
from academy.progress import service

router = APIRouter(tags=["Video"])


class ProgressUpdate(BaseModel):
    course_id: str
    lesson_id: str
    watch_time: Optional[float] = Field(None, ge=0, le=service.MAX_WATCH_TIME, allow_inf_nan=False)  # seconds
    completed: bool = False


@router.get("/course/{course_id}")
async def course_with_progress(
    course_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return {"success": True, **await service.get_course_with_progress(db, user, course_id)}


@router.post("/progress")
async def update_progress(
    data: ProgressUpdate,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    require_course_access(user, data.course_id)
    progress = await service.record_progress(
        db, user["user_id"], data.course_id, data.lesson_id, data.watch_time, data.completed
    )
    return {"success": True, "message": "Progress updated", "progress": progress}


@router.get("/url/{course_id}/{lesson_id}")
async def lesson_video(
    course_id: str,
    lesson_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return {"success": True, "video": await service.get_lesson_video(db, user, course_id, lesson_id)}


@router.get("/check-access/{course_id}")
async def check_access(
    course_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return {"success": True, **await service.check_access(db, user, course_id)}
