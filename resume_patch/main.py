import logging

from fastapi import FastAPI
import sentry_sdk

from resume_patch.api.v1.health import router as health_router
from resume_patch.api.v1.optimize import router as optimize_router
from resume_patch.core.config import settings
from dotenv import load_dotenv

load_dotenv()
logging.basicConfig(level=settings.log_level, format="%(message)s")
if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn)

app = FastAPI(title="Resume Patch API", version="0.1.0")

app.include_router(health_router, prefix="/v1", tags=["Health"])
app.include_router(optimize_router, prefix="/v1", tags=["Optimize"])
