"""
User accounts: registration, login state machine, admin maintenance
"""

import copy
import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

from academy.auth.models import UserType, UserStatus, RegisterRequest, ProfileData
from academy.auth.tokens import create_access_token
from academy.core.config import config
from academy.core.database import generate_id, serialize_mongo
from academy.core.errors import (
    AccessDeniedError, AuthenticationError, ConflictError, NotFoundError,
)

logger = logging.getLogger(__name__)

LOGIN_ATTEMPT_THRESHOLD = 5
FLAG_THRESHOLD = 5
TEST_USER_MAX_AGE = timedelta(hours=24)

TEMP_EMAIL_PATTERNS = [
    "10minutemail", "guerrillamail", "mailinator", "throwaway",
    "tempmail", "disposable", "fake", "test123", "spam",
]
RANDOM_DIGITS_EMAIL = re.compile(r"^\w+\d{4,}@")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)

DEMO_USERS = [
    {
        "username": "dummy_student",
        "email": "dummy.student@example.com",
        "password": "password123",
        "user_type": UserType.DUMMY,
        "profile": {"first_name": "Dummy", "last_name": "Student"},
    },
    {
        "username": "test_instructor",
        "email": "test.instructor@example.com",
        "password": "password123",
        "user_type": UserType.TEST,
        "profile": {"first_name": "Test", "last_name": "Instructor"},
    },
    {
        "username": "admin_demo",
        "email": "admin.demo@example.com",
        "password": "admin123",
        "user_type": UserType.ADMIN,
        "profile": {"first_name": "Admin", "last_name": "Demo"},
    },
]


# ==================== PASSWORDS ====================

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, stored: str) -> bool:
    """Check a plain password against the stored bcrypt hash"""
    try:
        return pwd_context.verify(password, stored)
    except (TypeError, ValueError):
        # empty or malformed stored hash
        return False


# ==================== STATE TRANSITIONS ====================

def flag_suspicious_activity(user: dict, reason: str, now: datetime) -> dict:
    """Record one suspicious event; the fifth one flags the account"""
    user = copy.deepcopy(user)
    activity = user.setdefault("suspicious_activity", {})
    activity["count"] = activity.get("count", 0) + 1
    activity["last_activity"] = now
    activity.setdefault("reasons", []).append(reason)

    if activity["count"] >= FLAG_THRESHOLD:
        user["status"] = UserStatus.FLAGGED.value
    return user


def apply_login_failure(user: dict, now: datetime) -> dict:
    """
    Pure transition for a failed password check.
    From the fifth consecutive failure on, every failure counts as suspicious.
    """
    user = copy.deepcopy(user)
    user["login_attempts"] = user.get("login_attempts", 0) + 1

    if user["login_attempts"] >= LOGIN_ATTEMPT_THRESHOLD:
        user = flag_suspicious_activity(user, "Multiple failed login attempts", now)
    return user


def detect_suspicious_activity(email: str, user_agent: str = "") -> List[str]:
    reasons = []
    lowered = email.lower()

    if any(pattern in lowered for pattern in TEMP_EMAIL_PATTERNS):
        reasons.append("Temporary/disposable email detected")

    agent = (user_agent or "").lower()
    if any(marker in agent for marker in ("bot", "crawler", "spider")):
        reasons.append("Bot-like user agent detected")

    if RANDOM_DIGITS_EMAIL.match(lowered):
        reasons.append("Suspicious email pattern (random numbers)")

    return reasons


def public_user(user: dict) -> dict:
    """User document without credentials or request metadata"""
    user = serialize_mongo(user)
    user.pop("password_hash", None)
    user.pop("metadata", None)
    return user


def display_name(user: Optional[dict]) -> str:
    if not user:
        return "Unknown"
    profile = user.get("profile") or {}
    name = f"{profile.get('first_name') or ''} {profile.get('last_name') or ''}".strip()
    return name or user.get("username", "Unknown")


# ==================== REGISTRATION / LOGIN ====================

def build_user_document(
    username: str,
    email: str,
    password: str,
    user_type: UserType,
    profile: dict,
    now: datetime,
    user_agent: str = "",
    ip_address: str = "unknown",
) -> dict:
    user_type = UserType(user_type)
    return {
        "user_id": generate_id("USR"),
        "username": username,
        "email": email,
        "password_hash": hash_password(password),
        "user_type": user_type.value,
        "status": UserStatus.ACTIVE.value,
        "login_attempts": 0,
        "last_login": None,
        "account_created": now,
        "is_verified": user_type in (UserType.DUMMY, UserType.TEST),
        "suspicious_activity": {"count": 0, "reasons": [], "last_activity": None},
        "profile": {k: v for k, v in profile.items() if v is not None},
        "metadata": {"user_agent": user_agent, "ip_address": ip_address},
        "purchased_courses": [],
    }


async def register_user(
    db: AsyncIOMotorDatabase,
    data: RegisterRequest,
    user_agent: str = "",
    ip_address: str = "unknown",
) -> dict:
    if data.user_type == UserType.ADMIN:
        raise AccessDeniedError("Admin accounts cannot be self-registered")

    existing = await db.users.find_one({"$or": [{"email": data.email}, {"username": data.username}]})
    if existing:
        raise ConflictError("User already exists with this email or username")

    now = datetime.utcnow()
    user = build_user_document(
        data.username, data.email, data.password, data.user_type,
        data.profile.model_dump(), now, user_agent, ip_address,
    )

    reasons = detect_suspicious_activity(data.email, user_agent)
    if reasons:
        user["status"] = UserStatus.FLAGGED.value
        user["suspicious_activity"] = {"count": len(reasons), "reasons": reasons, "last_activity": now}
        logger.warning("Registration flagged for %s: %s", data.email, reasons)

    try:
        await db.users.insert_one(user)
    except DuplicateKeyError:
        raise ConflictError("User already exists with this email or username")

    logger.info("User registered: %s (%s)", user["user_id"], user["user_type"])
    return {
        "user": public_user(user),
        "warnings": "Account flagged for review" if reasons else None,
    }


def ensure_account_usable(user: dict):
    """Suspended and flagged accounts can neither log in nor use a live token"""
    if user.get("status") == UserStatus.SUSPENDED.value:
        raise AccessDeniedError("Account suspended. Please contact support.")
    if user.get("status") == UserStatus.FLAGGED.value:
        raise AccessDeniedError("Account under review. Please contact support.")


async def login_user(
    db: AsyncIOMotorDatabase,
    email: str,
    password: str,
    user_agent: str = "",
    ip_address: str = "unknown",
) -> dict:
    user = await db.users.find_one({"email": email})
    if not user:
        raise AuthenticationError("Invalid credentials")

    ensure_account_usable(user)

    now = datetime.utcnow()

    if not verify_password(password, user.get("password_hash", "")):
        failed = apply_login_failure(user, now)
        await db.users.update_one(
            {"user_id": user["user_id"]},
            {"$set": {
                "login_attempts": failed["login_attempts"],
                "suspicious_activity": failed.get("suspicious_activity", {}),
                "status": failed.get("status", UserStatus.ACTIVE.value),
            }}
        )
        if failed.get("status") == UserStatus.FLAGGED.value:
            logger.warning("User %s flagged after repeated failed logins", user["user_id"])
        raise AuthenticationError("Invalid credentials")

    await db.users.update_one(
        {"user_id": user["user_id"]},
        {"$set": {
            "last_login": now,
            "login_attempts": 0,
            "metadata.ip_address": ip_address,
            "metadata.user_agent": user_agent,
        }}
    )
    user["last_login"] = now
    user["login_attempts"] = 0

    return {
        "token": create_access_token(user["user_id"]),
        "user": public_user(user),
        "is_dummy": user.get("user_type") in (UserType.DUMMY.value, UserType.TEST.value),
    }


# ==================== ADMIN / PROFILE ====================

async def get_user(db: AsyncIOMotorDatabase, user_id: str) -> dict:
    user = await db.users.find_one({"user_id": user_id})
    if not user:
        raise NotFoundError("User")
    return user


async def update_user_status(
    db: AsyncIOMotorDatabase,
    user_id: str,
    status: UserStatus,
    reason: Optional[str] = None,
) -> dict:
    user = await get_user(db, user_id)
    status = UserStatus(status)
    now = datetime.utcnow()

    user["status"] = status.value
    if status == UserStatus.FLAGGED and reason:
        user = flag_suspicious_activity(user, reason, now)
    elif status != UserStatus.FLAGGED:
        # Leaving the flagged state clears the counter so count >= 5 keeps meaning flagged
        user.setdefault("suspicious_activity", {})["count"] = 0
        user["login_attempts"] = 0

    await db.users.update_one(
        {"user_id": user_id},
        {"$set": {
            "status": user["status"],
            "suspicious_activity": user["suspicious_activity"],
            "login_attempts": user.get("login_attempts", 0),
        }}
    )
    logger.info("User %s status set to %s", user_id, user["status"])
    return public_user(user)


async def update_profile(db: AsyncIOMotorDatabase, user_id: str, profile: ProfileData) -> dict:
    await get_user(db, user_id)

    changes = {f"profile.{k}": v for k, v in profile.model_dump(exclude_unset=True).items()}
    if changes:
        await db.users.update_one({"user_id": user_id}, {"$set": changes})

    return public_user(await get_user(db, user_id))


async def get_all_users(
    db: AsyncIOMotorDatabase,
    user_type: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    query = {}
    if user_type:
        query["user_type"] = user_type
    if status:
        query["status"] = status

    page = max(page, 1)
    limit = max(limit, 1)

    cursor = db.users.find(query, {"password_hash": 0}).sort("account_created", -1)
    users = await cursor.skip((page - 1) * limit).limit(limit).to_list(length=limit)
    total = await db.users.count_documents(query)

    return {
        "users": [public_user(u) for u in users],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": -(-total // limit),
        },
    }


async def get_user_analytics(db: AsyncIOMotorDatabase) -> dict:
    pipeline = [
        {"$group": {
            "_id": "$user_type",
            "count": {"$sum": 1},
            "active_users": {"$sum": {"$cond": [{"$eq": ["$status", "active"]}, 1, 0]}},
            "flagged_users": {"$sum": {"$cond": [{"$eq": ["$status", "flagged"]}, 1, 0]}},
        }}
    ]
    by_type = await db.users.aggregate(pipeline).to_list(None)
    suspicious = await db.users.count_documents({"suspicious_activity.count": {"$gte": 3}})
    total = await db.users.count_documents({})

    return {
        "by_type": [{"user_type": row.pop("_id"), **row} for row in by_type],
        "suspicious_users": suspicious,
        "total_users": total,
    }


async def cleanup_test_users(db: AsyncIOMotorDatabase, now: Optional[datetime] = None) -> int:
    """Hard-delete dummy/test accounts older than a day"""
    now = now or datetime.utcnow()
    result = await db.users.delete_many({
        "user_type": {"$in": [UserType.DUMMY.value, UserType.TEST.value]},
        "account_created": {"$lt": now - TEST_USER_MAX_AGE},
    })
    logger.info("Cleaned up %d test users", result.deleted_count)
    return result.deleted_count


async def seed_demo_users(db: AsyncIOMotorDatabase):
    now = datetime.utcnow()
    for demo in DEMO_USERS:
        if await db.users.find_one({"email": demo["email"]}):
            continue
        user = build_user_document(
            demo["username"], demo["email"], demo["password"],
            demo["user_type"], demo["profile"], now,
        )
        await db.users.insert_one(user)
        logger.info("Created demo user: %s", demo["email"])
