import copy
import os
import uuid
from datetime import datetime

import mongomock
import pytest
import razorpay
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("BCRYPT_ROUNDS", "4")

from academy.auth.accounts import build_user_document
from academy.auth.models import UserType
from academy.auth.tokens import create_access_token
from academy.core.database import create_indexes, get_db
from academy.payments.gateway import gateway
from academy.quiz.models import QuizCreate
from academy.quiz.service import create_quiz

COURSE = {
    "course_id": "CRS_PY101",
    "title": "Python Basics",
    "description": "Variables, loops and functions",
    "category": "programming",
    "level": "beginner",
    "thumbnail": "https://cdn.example.com/py101.png",
    "instructor": "Asha Rao",
    "price": 999,
    "discount_price": 499,
    "has_discount": True,
    "is_free": False,
    "curriculum": [
        {
            "id": "t1",
            "title": "Getting started",
            "lessons": [
                {"id": "l1", "title": "Install Python", "is_free": True,
                 "video_url": "https://youtu.be/abc", "video_provider": "youtube", "video_id": "abc"},
                {"id": "l2", "title": "Hello world", "video_url": "https://youtu.be/def",
                 "video_provider": "youtube", "video_id": "def"},
            ],
        },
        {
            "id": "t2",
            "title": "Control flow",
            "lessons": [
                {"id": "l3", "title": "If statements"},
                {"id": "l4", "title": "Loops"},
            ],
        },
    ],
}

QUESTIONS = [
    {"question": "2 + 2 = ?", "type": "multiple-choice", "options": ["3", "4", "5"],
     "correct_answer": "4", "explanation": "Basic addition", "points": 2},
    {"question": "Python is dynamically typed", "type": "true-false",
     "correct_answer": True, "points": 1},
    {"question": "Capital of France?", "type": "short-answer",
     "correct_answer": "Paris", "points": 1},
]


# ==================== IN-MEMORY MONGO ====================

class AsyncCursor:
    """Awaitable view over a mongomock cursor, shaped like Motor's"""

    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, key, direction=None):
        self._cursor = self._cursor.sort(key, direction) if direction is not None else self._cursor.sort(key)
        return self

    def skip(self, count):
        self._cursor = self._cursor.skip(count)
        return self

    def limit(self, count):
        self._cursor = self._cursor.limit(count)
        return self

    async def to_list(self, length=None):
        docs = list(self._cursor)
        return docs if length is None else docs[:length]


class AsyncCollection:
    """Motor-style collection: coroutine methods over a synchronous mongomock collection"""

    _AWAITABLE = {
        "find_one", "insert_one", "update_one", "update_many", "find_one_and_update",
        "delete_one", "delete_many", "count_documents", "create_index",
    }

    def __init__(self, collection):
        self._collection = collection

    def find(self, *args, **kwargs):
        return AsyncCursor(self._collection.find(*args, **kwargs))

    def aggregate(self, pipeline, **kwargs):
        return AsyncCursor(self._collection.aggregate(pipeline, **kwargs))

    def __getattr__(self, name):
        method = getattr(self._collection, name)
        if name not in self._AWAITABLE:
            return method

        async def call(*args, **kwargs):
            return method(*args, **kwargs)
        return call


class AsyncDatabase:
    def __init__(self, database):
        self._database = database

    def __getitem__(self, name):
        return AsyncCollection(self._database[name])

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]


@pytest.fixture
async def db():
    client = mongomock.MongoClient()
    database = AsyncDatabase(client[f"academy_test_{uuid.uuid4().hex[:8]}"])
    await create_indexes(database)
    return database


@pytest.fixture
def make_user(db):
    async def _make_user(username, user_type=UserType.REGULAR, purchased=()):
        now = datetime.utcnow()
        user = build_user_document(
            username, f"{username}@example.com", "secret123", user_type,
            {"first_name": username.title(), "last_name": "Tester"}, now,
        )
        user["purchased_courses"] = [
            {"course_id": course_id, "purchased_at": now, "order_id": "ORD-seed"}
            for course_id in purchased
        ]
        await db.users.insert_one(user)
        return user
    return _make_user


@pytest.fixture
async def course(db):
    doc = copy.deepcopy(COURSE)
    await db.courses.insert_one(doc)
    return doc


@pytest.fixture
async def student(make_user, course):
    return await make_user("student", purchased=[course["course_id"]])


@pytest.fixture
async def outsider(make_user):
    return await make_user("outsider")


@pytest.fixture
async def admin(make_user):
    return await make_user("admin", user_type=UserType.ADMIN)


@pytest.fixture
def make_quiz(db, course, admin):
    async def _make_quiz(**overrides):
        fields = {
            "course_id": course["course_id"],
            "title": "Basics check",
            "questions": copy.deepcopy(QUESTIONS),
            "is_published": True,
        }
        fields.update(overrides)
        return await create_quiz(db, QuizCreate(**fields), admin["user_id"])
    return _make_quiz


@pytest.fixture
async def quiz(make_quiz):
    return await make_quiz()


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user['user_id'])}"}
    return _headers


@pytest.fixture
async def client(db):
    from academy.main import app

    app.dependency_overrides[get_db] = lambda: db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ==================== PAYMENT GATEWAY ====================

class FakeRazorpayOrders:
    def __init__(self):
        self.created = []

    def create(self, data):
        self.created.append(data)
        return {"id": f"order_fake{len(self.created)}", "status": "created", **data}


class FakeRazorpayPayments:
    def __init__(self):
        self.payments = {}

    def fetch(self, payment_id):
        if payment_id not in self.payments:
            raise razorpay.errors.BadRequestError("The id provided does not exist")
        return self.payments[payment_id]


class FakeRazorpayClient:
    """Stands in for razorpay.Client's order and payment resources"""

    def __init__(self):
        self.order = FakeRazorpayOrders()
        self.payment = FakeRazorpayPayments()


@pytest.fixture
def razorpay_client(monkeypatch):
    fake = FakeRazorpayClient()
    monkeypatch.setattr(gateway, "client", fake)
    return fake
