import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from groupchat.core.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)

from groupchat.api import groups, health, invites, messages
from groupchat.core.exceptions import GroupServiceError
from groupchat.db.session import engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Group service starting on port {settings.SERVICE_PORT}")
    yield
    await engine.dispose()
    logger.info("Group service stopped")


app = FastAPI(
    title="Group Membership Service",
    description="Groups, member roles, permissions, invite links and audit trail",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GroupServiceError)
async def group_service_error_handler(request: Request, exc: GroupServiceError):
    return JSONResponse(status_code=exc.status_code, content={"code": exc.code, "detail": exc.detail})


app.include_router(health.router)
app.include_router(groups.router)
app.include_router(messages.router)
app.include_router(invites.router)
