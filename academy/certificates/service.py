"""
Course completion certificates

One certificate per (user, course), issued once progress reaches 100%.
Re-issuing returns the stored certificate.
"""

import io
import logging
import string
from datetime import datetime

from motor.motor_asyncio import AsyncIOMotorDatabase
from PIL import Image, ImageDraw, ImageFont
from pymongo.errors import DuplicateKeyError

from academy.auth.accounts import display_name
from academy.core.database import generate_id, serialize_mongo, serialize_many, timestamped_id
from academy.core.errors import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from academy.courses.database import count_lessons, get_course, require_course_access

logger = logging.getLogger(__name__)

CERTIFICATE_NUMBER_ATTEMPTS = 5


def new_certificate_number() -> str:
    return timestamped_id("CERT", 4, string.digits)


# ==================== ISSUANCE ====================

async def issue_certificate(db: AsyncIOMotorDatabase, user: dict, course_id: str) -> dict:
    """Returns {"certificate": {...}, "already_issued": bool}"""
    course = await get_course(db, course_id)
    require_course_access(user, course_id)
    key = {"user_id": user["user_id"], "course_id": course_id}

    existing = await db.certificates.find_one(key)
    if existing:
        return {"certificate": serialize_mongo(existing), "already_issued": True}

    progress = await db.progress.find_one(key)
    if not progress:
        raise NotFoundError("Progress")
    if progress.get("progress_percentage", 0) < 100:
        raise ValidationError("Course must be fully completed before a certificate is issued")

    now = datetime.utcnow()
    certificate = {
        "certificate_id": generate_id("CRT"),
        "user_id": user["user_id"],
        "course_id": course_id,
        "student_name": display_name(user),
        "course_name": course.get("title", ""),
        "instructor_name": course.get("instructor", ""),
        "issue_date": now,
        "completion_date": progress.get("last_accessed") or now,
        "total_lessons": count_lessons(course),
        "completed_lessons": len(progress.get("completed_lessons", [])),
        "total_watch_time": sum((progress.get("watch_time") or {}).values()),
    }

    for _ in range(CERTIFICATE_NUMBER_ATTEMPTS):
        certificate["certificate_number"] = new_certificate_number()
        certificate.pop("_id", None)
        try:
            await db.certificates.insert_one(certificate)
            break
        except DuplicateKeyError:
            # Either a concurrent issue for the same pair or a number collision
            existing = await db.certificates.find_one(key)
            if existing:
                return {"certificate": serialize_mongo(existing), "already_issued": True}
    else:
        raise ConflictError("Could not allocate a unique certificate number")

    await db.progress.update_one(key, {"$set": {"certificate_issued": True}})
    logger.info(
        "Certificate issued: %s to %s for %s",
        certificate["certificate_number"], user["user_id"], course_id
    )
    return {"certificate": serialize_mongo(certificate), "already_issued": False}


# ==================== LOOKUPS ====================

async def get_my_certificates(db: AsyncIOMotorDatabase, user_id: str):
    certificates = await db.certificates.find({"user_id": user_id}).sort("issue_date", -1).to_list(length=None)
    return serialize_many(certificates)


async def get_certificate(db: AsyncIOMotorDatabase, certificate_id: str, user: dict) -> dict:
    certificate = await db.certificates.find_one({"certificate_id": certificate_id})
    if not certificate:
        raise NotFoundError("Certificate")
    if certificate["user_id"] != user["user_id"]:
        raise AccessDeniedError("Certificate belongs to another user")
    return serialize_mongo(certificate)


async def get_course_certificate(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> dict:
    certificate = await db.certificates.find_one({"user_id": user_id, "course_id": course_id})
    if not certificate:
        raise NotFoundError("Certificate")
    return serialize_mongo(certificate)


async def verify_certificate(db: AsyncIOMotorDatabase, certificate_number: str) -> dict:
    """Public check by certificate number; exposes no user ids"""
    certificate = await db.certificates.find_one({"certificate_number": certificate_number})
    if not certificate:
        raise NotFoundError("Certificate")
    return {
        "certificate_number": certificate["certificate_number"],
        "student_name": certificate.get("student_name"),
        "course_name": certificate.get("course_name"),
        "instructor_name": certificate.get("instructor_name"),
        "issue_date": certificate.get("issue_date"),
        "completion_date": certificate.get("completion_date"),
    }


async def list_all_certificates(db: AsyncIOMotorDatabase, page: int = 1, limit: int = 20) -> dict:
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    total = await db.certificates.count_documents({})
    certificates = await (
        db.certificates.find({})
        .sort("issue_date", -1)
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list(length=limit)
    )
    return {
        "certificates": serialize_many(certificates),
        "pagination": {
            "current_page": page,
            "total_pages": (total + limit - 1) // limit,
            "total_certificates": total,
        },
    }


# ==================== RENDERING ====================

CANVAS = (1600, 1130)
MARGIN = 90
FONT_DIR = "/usr/share/fonts/truetype/dejavu"

INK = (33, 37, 41)
MUTED = (108, 117, 125)
ACCENT = (22, 96, 136)
PANEL = (236, 242, 247)


def _font(name: str, size: int):
    try:
        return ImageFont.truetype(f"{FONT_DIR}/{name}", size)
    except OSError:
        return ImageFont.load_default()


def _format_watch_time(seconds: int) -> str:
    hours, rest = divmod(int(seconds or 0), 3600)
    return f"{hours}h {rest // 60:02d}m"


def _format_date(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%d %b %Y")
    return str(value or "")


def _stat_panel(draw, box, label: str, value: str, fonts):
    left, top, right, bottom = box
    draw.rectangle(box, fill=PANEL)
    draw.rectangle([left, top, left + 8, bottom], fill=ACCENT)
    draw.text((left + 32, top + 24), label.upper(), fill=MUTED, font=fonts["label"])
    draw.text((left + 32, top + 64), value, fill=INK, font=fonts["stat"])


def render_certificate_image(certificate: dict) -> bytes:
    """
    Render a certificate as PNG bytes.

    Layout: header band, recipient and course, then one panel each for
    lessons completed, total watch time and completion date. The footer
    carries the instructor line and the number used for public verification.
    """
    width, height = CANVAS
    img = Image.new("RGB", CANVAS, color="white")
    draw = ImageDraw.Draw(img)
    fonts = {
        "band": _font("DejaVuSans-Bold.ttf", 34),
        "name": _font("DejaVuSerif-Bold.ttf", 72),
        "course": _font("DejaVuSerif.ttf", 46),
        "body": _font("DejaVuSans.ttf", 30),
        "label": _font("DejaVuSans.ttf", 22),
        "stat": _font("DejaVuSans-Bold.ttf", 44),
    }

    # Header band
    draw.rectangle([0, 0, width, 150], fill=ACCENT)
    draw.text((MARGIN, 56), "CERTIFICATE OF COMPLETION", fill="white", font=fonts["band"])

    # Recipient and course
    draw.text((MARGIN, 220), "Awarded to", fill=MUTED, font=fonts["body"])
    draw.text((MARGIN, 265), certificate.get("student_name", ""), fill=INK, font=fonts["name"])
    draw.text((MARGIN, 380), "for completing every lesson of", fill=MUTED, font=fonts["body"])
    draw.text((MARGIN, 425), certificate.get("course_name", ""), fill=ACCENT, font=fonts["course"])

    # Course record
    completed = certificate.get("completed_lessons", 0)
    total = certificate.get("total_lessons", 0)
    stats = [
        ("Lessons completed", f"{completed} / {total}"),
        ("Total watch time", _format_watch_time(certificate.get("total_watch_time", 0))),
        ("Completed on", _format_date(certificate.get("completion_date") or certificate.get("issue_date"))),
    ]
    gap = 40
    panel_width = (width - 2 * MARGIN - gap * (len(stats) - 1)) // len(stats)
    for i, (label, value) in enumerate(stats):
        left = MARGIN + i * (panel_width + gap)
        _stat_panel(draw, [left, 560, left + panel_width, 720], label, value, fonts)

    # Footer
    footer_y = height - 230
    draw.line([(MARGIN, footer_y), (MARGIN + 420, footer_y)], fill=INK, width=2)
    draw.text((MARGIN, footer_y + 16), certificate.get("instructor_name") or "Course instructor",
              fill=INK, font=fonts["body"])
    draw.text((MARGIN, footer_y + 56), "Instructor", fill=MUTED, font=fonts["label"])

    number = certificate.get("certificate_number", "")
    number_width = draw.textbbox((0, 0), number, font=fonts["body"])[2]
    draw.text((width - MARGIN - number_width, footer_y + 16), number, fill=INK, font=fonts["body"])
    label = "Verify at /api/certificates/verify/<number>"
    label_width = draw.textbbox((0, 0), label, font=fonts["label"])[2]
    draw.text((width - MARGIN - label_width, footer_y + 56), label, fill=MUTED, font=fonts["label"])

    draw.rectangle([0, height - 24, width, height], fill=ACCENT)

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()

