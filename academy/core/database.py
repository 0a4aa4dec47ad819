"""
MongoDB access for the academy backend
Motor client, request dependency, index setup and document helpers
"""

import logging
import random
import string
import time
import uuid

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from academy.core.config import config

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(config.MONGO_URL)
db = client[config.MONGO_DB_NAME]


async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    return db


# ==================== DOCUMENT HELPERS ====================

def serialize_mongo(doc: dict) -> dict:
    """Strip the internal Mongo id before a document leaves the service"""
    if doc is None:
        return None
    doc = dict(doc)
    doc.pop("_id", None)
    return doc


def serialize_many(docs: list) -> list:
    return [serialize_mongo(doc) for doc in docs]


def generate_id(prefix: str) -> str:
    """Generate unique ID with prefix"""
    return f"{prefix}_{uuid.uuid4().hex[:12].upper()}"


def timestamped_id(prefix: str, suffix_length: int, alphabet: str = string.ascii_uppercase + string.digits) -> str:
    """Human-readable id: PREFIX-<epoch ms>-<random suffix>"""
    suffix = "".join(random.choices(alphabet, k=suffix_length))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


# ==================== INDEXES ====================

async def create_indexes(database: AsyncIOMotorDatabase):
    """Create MongoDB indexes for uniqueness and lookups"""

    # Users
    await database.users.create_index("user_id", unique=True)
    await database.users.create_index("email", unique=True)
    await database.users.create_index("username", unique=True)
    await database.users.create_index([("user_type", 1), ("status", 1)])

    # Courses
    await database.courses.create_index("course_id", unique=True)

    # Orders
    await database.orders.create_index("order_id", unique=True)
    await database.orders.create_index([("user_id", 1), ("order_date", -1)])
    await database.orders.create_index("payment.status")
    await database.orders.create_index("status")

    # Progress (one per user and course)
    await database.progress.create_index([("user_id", 1), ("course_id", 1)], unique=True)

    # Quizzes
    await database.quizzes.create_index("quiz_id", unique=True)
    await database.quizzes.create_index("course_id")

    # Quiz attempts
    await database.quiz_attempts.create_index("attempt_id", unique=True)
    await database.quiz_attempts.create_index(
        [("quiz_id", 1), ("user_id", 1), ("attempt_number", 1)], unique=True
    )
    await database.quiz_attempts.create_index([("user_id", 1), ("course_id", 1)])

    # Certificates
    await database.certificates.create_index("certificate_id", unique=True)
    await database.certificates.create_index("certificate_number", unique=True)
    await database.certificates.create_index([("user_id", 1), ("course_id", 1)], unique=True)

    logger.info("Database indexes created")
