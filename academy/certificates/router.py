"""
Certificate endpoints
Mounted at /api/certificates
"""

from fastapi import APIRouter, Depends, Response
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from academy.auth.dependencies import get_current_user, require_admin
from academy.certificates import service
from academy.core.database import get_db

router = APIRouter(tags=["Certificates"])


class IssueRequest(BaseModel):
    course_id: str


@router.post("/issue")
async def issue_certificate(
    data: IssueRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    result = await service.issue_certificate(db, user, data.course_id)
    message = "Certificate already issued" if result["already_issued"] else "Certificate issued successfully"
    return {"success": True, "message": message, **result}


@router.get("/my-certificates")
async def my_certificates(
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    certificates = await service.get_my_certificates(db, user["user_id"])
    return {"success": True, "certificates": certificates}


@router.get("/course/{course_id}")
async def course_certificate(
    course_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    certificate = await service.get_course_certificate(db, user["user_id"], course_id)
    return {"success": True, "certificate": certificate}


@router.get("/verify/{certificate_number}")
async def verify_certificate(certificate_number: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    certificate = await service.verify_certificate(db, certificate_number)
    return {"success": True, "valid": True, "certificate": certificate}


@router.get("/admin/all")
async def all_certificates(
    page: int = 1,
    limit: int = 20,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return {"success": True, **await service.list_all_certificates(db, page, limit)}


@router.get("/{certificate_id}")
async def get_certificate(
    certificate_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    certificate = await service.get_certificate(db, certificate_id, user)
    return {"success": True, "certificate": certificate}


@router.get("/{certificate_id}/download")
async def download_certificate(
    certificate_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    certificate = await service.get_certificate(db, certificate_id, user)
    image = service.render_certificate_image(certificate)
    return Response(
        content=image,
        media_type="image/png",
        headers={"Content-Disposition": f"attachment; filename=certificate_{certificate['certificate_number']}.png"}
    )
