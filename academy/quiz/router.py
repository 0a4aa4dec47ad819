"""
Quiz endpoints
Mounted at /api/quiz
"""

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from academy.auth.dependencies import get_current_user, require_admin
from academy.core.database import get_db
from academy.quiz import service
from academy.quiz.models import QuizCreate, QuizUpdate, PublishRequest, SubmitRequest

router = APIRouter(tags=["Quiz"])


# ==================== ADMIN ====================

@router.post("/create", status_code=201)
async def create_quiz(
    data: QuizCreate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    quiz = await service.create_quiz(db, data, admin["user_id"])
    return {"success": True, "message": "Quiz created successfully", "quiz": quiz}


@router.get("/all")
async def list_all_quizzes(
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return {"success": True, "quizzes": await service.list_all_quizzes(db)}


@router.get("/course/{course_id}")
async def course_quizzes(
    course_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    quizzes = await service.list_course_quizzes(db, course_id, user)
    return {"success": True, "quizzes": quizzes}


@router.get("/attempts/{course_id}")
async def my_attempts(
    course_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    attempts = await service.list_user_attempts(db, course_id, user["user_id"])
    return {"success": True, "attempts": attempts}


@router.get("/{quiz_id}")
async def get_quiz(
    quiz_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return {"success": True, "quiz": await service.get_quiz(db, quiz_id)}


@router.put("/{quiz_id}")
async def update_quiz(
    quiz_id: str,
    data: QuizUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    quiz = await service.update_quiz(db, quiz_id, data)
    return {"success": True, "message": "Quiz updated successfully", "quiz": quiz}


@router.delete("/{quiz_id}")
async def delete_quiz(
    quiz_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    removed = await service.delete_quiz(db, quiz_id)
    return {"success": True, "message": "Quiz deleted successfully", "deleted_attempts": removed}


@router.patch("/{quiz_id}/publish")
async def publish_quiz(
    quiz_id: str,
    data: PublishRequest,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    quiz = await service.set_published(db, quiz_id, data.is_published)
    state = "published" if data.is_published else "unpublished"
    return {"success": True, "message": f"Quiz {state} successfully", "quiz": quiz}


@router.get("/{quiz_id}/results")
async def quiz_results(
    quiz_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return {"success": True, **await service.compute_results_analytics(db, quiz_id)}


# ==================== STUDENT ====================

@router.get("/{quiz_id}/start")
async def start_quiz(
    quiz_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return {"success": True, **await service.start_attempt(db, quiz_id, user)}


@router.post("/{quiz_id}/submit")
async def submit_quiz(
    quiz_id: str,
    data: SubmitRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    result = await service.submit_attempt(
        db,
        quiz_id,
        user["user_id"],
        [answer.model_dump() for answer in data.answers],
        data.time_spent,
        data.started_at,
    )
    return {"success": True, "message": "Quiz submitted successfully", **result}
