import io
import re
from datetime import datetime

import pytest
from PIL import Image

from academy.certificates import service
from academy.core.errors import AccessDeniedError, NotFoundError, ValidationError
from academy.progress.service import record_progress


async def _complete_course(db, user):
    for lesson in ["l1", "l2", "l3", "l4"]:
        await record_progress(db, user["user_id"], "CRS_PY101", lesson, 600, True)


async def test_issue_requires_progress(db, student):
    with pytest.raises(NotFoundError):
        await service.issue_certificate(db, student, "CRS_PY101")

    await record_progress(db, student["user_id"], "CRS_PY101", "l1", 60, True)
    with pytest.raises(ValidationError):
        await service.issue_certificate(db, student, "CRS_PY101")


async def test_issue_requires_purchase(db, course, outsider):
    with pytest.raises(AccessDeniedError):
        await service.issue_certificate(db, outsider, "CRS_PY101")


async def test_issue_and_reissue(db, student):
    await _complete_course(db, student)

    first = await service.issue_certificate(db, student, "CRS_PY101")
    cert = first["certificate"]
    assert first["already_issued"] is False
    assert re.match(r"^CERT-\d{13}-\d{4}$", cert["certificate_number"])
    assert cert["student_name"] == "Student Tester"
    assert cert["course_name"] == "Python Basics"
    assert cert["instructor_name"] == "Asha Rao"
    assert (cert["total_lessons"], cert["completed_lessons"], cert["total_watch_time"]) == (4, 4, 2400)

    progress = await db.progress.find_one({"user_id": student["user_id"], "course_id": "CRS_PY101"})
    assert progress["certificate_issued"] is True

    second = await service.issue_certificate(db, student, "CRS_PY101")
    assert second["already_issued"] is True
    assert second["certificate"]["certificate_number"] == cert["certificate_number"]
    assert await db.certificates.count_documents({}) == 1


async def test_issue_retries_number_collision(db, student, make_user, monkeypatch):
    other = await make_user("other", purchased=["CRS_PY101"])
    numbers = iter(["CERT-1-0001", "CERT-1-0001", "CERT-2-0002"])
    monkeypatch.setattr(service, "new_certificate_number", lambda: next(numbers))

    await _complete_course(db, student)
    await _complete_course(db, other)
    first = await service.issue_certificate(db, student, "CRS_PY101")
    second = await service.issue_certificate(db, other, "CRS_PY101")

    assert first["certificate"]["certificate_number"] == "CERT-1-0001"
    assert second["certificate"]["certificate_number"] == "CERT-2-0002"


async def test_lookups_and_ownership(db, student, outsider, admin):
    await _complete_course(db, student)
    cert = (await service.issue_certificate(db, student, "CRS_PY101"))["certificate"]

    assert (await service.get_certificate(db, cert["certificate_id"], student))["certificate_number"] == cert["certificate_number"]
    with pytest.raises(AccessDeniedError):
        await service.get_certificate(db, cert["certificate_id"], outsider)

    mine = await service.get_my_certificates(db, student["user_id"])
    assert [c["certificate_id"] for c in mine] == [cert["certificate_id"]]
    assert (await service.get_course_certificate(db, student["user_id"], "CRS_PY101"))["certificate_id"] == cert["certificate_id"]
    with pytest.raises(NotFoundError):
        await service.get_course_certificate(db, outsider["user_id"], "CRS_PY101")

    listing = await service.list_all_certificates(db)
    assert listing["pagination"]["total_certificates"] == 1


async def test_public_verification(db, student):
    await _complete_course(db, student)
    cert = (await service.issue_certificate(db, student, "CRS_PY101"))["certificate"]

    verified = await service.verify_certificate(db, cert["certificate_number"])
    assert verified["student_name"] == "Student Tester"
    assert "user_id" not in verified

    with pytest.raises(NotFoundError):
        await service.verify_certificate(db, "CERT-0-0000")


def test_render_certificate_png():
    image = service.render_certificate_image({
        "completion_date": datetime(2026, 3, 14),
        "certificate_number": "CERT-1-0001",
        "student_name": "Student Tester",
        "course_name": "Python Basics",
        "instructor_name": "Asha Rao",
        "total_lessons": 4,
        "completed_lessons": 4,
        "total_watch_time": 2400,
    })
    assert image.startswith(b"\x89PNG")
    assert Image.open(io.BytesIO(image)).size == service.CANVAS


def test_watch_time_and_date_formatting():
    assert service._format_watch_time(2400) == "0h 40m"
    assert service._format_watch_time(3 * 3600 + 5 * 60 + 59) == "3h 05m"
    assert service._format_watch_time(None) == "0h 00m"
    assert service._format_date(datetime(2026, 3, 14)) == "14 Mar 2026"
