"""Reward Program onboarding – FastAPI application."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reward_program.config import get_settings
from reward_program.database import Base, SessionLocal, engine
from reward_program.errors import ServiceError
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from reward_program.models import (  # noqa: F401
    Account, Role, ShopProfile, SellerProfile, TechnicianProfile,
    OtpChallenge, ApprovalRecord, Region, City, District,
)
from reward_program.routers import auth, approvals
from reward_program.services.notifications import shutdown_scheduler

logger = logging.getLogger("uvicorn.error")

settings = get_settings()
app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(approvals.router)


@app.exception_handler(ServiceError)
def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def startup():
    try:
        Base.metadata.create_all(bind=engine)
        if settings.seed_reference_data:
            from reward_program.seed import seed_reference_data
            db = SessionLocal()
            try:
                seed_reference_data(db)
            finally:
                db.close()
    except Exception as e:
        logger.warning("Database startup failed (tables/seed skipped). Check DATABASE_URL and network. Error: %s", e)


@app.on_event("shutdown")
def shutdown():
    shutdown_scheduler()


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
