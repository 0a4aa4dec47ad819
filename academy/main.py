import logging
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from academy.auth.accounts import seed_demo_users
from academy.auth.router import router as auth_router
from academy.certificates.router import router as certificates_router
from academy.core.config import config
from academy.core.database import create_indexes, db
from academy.core.errors import register_exception_handlers
from academy.courses.router import router as courses_router
from academy.orders.router import router as orders_router
from academy.payments.router import router as payment_router
from academy.progress.router import router as video_router
from academy.quiz.router import router as quiz_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Academy Backend")


@app.on_event("startup")
async def startup_event():
    await create_indexes(db)
    if config.SEED_DEMO_USERS:
        await seed_demo_users(db)
    logger.info("Academy backend started")


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# ==================== ROUTER REGISTRATION ====================
app.include_router(auth_router, prefix="/api/auth")
app.include_router(courses_router, prefix="/api/courses")
app.include_router(orders_router, prefix="/api/orders")
app.include_router(payment_router, prefix="/api/payment")
app.include_router(quiz_router, prefix="/api/quiz")
app.include_router(video_router, prefix="/api/video")
app.include_router(certificates_router, prefix="/api/certificates")
# ============================================================


@app.get("/")
async def root():
    return {"success": True, "message": "Academy backend is running", "timestamp": datetime.utcnow()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("academy.main:app", host="0.0.0.0", port=8000, reload=False)
