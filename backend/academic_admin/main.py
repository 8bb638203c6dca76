import logging

from fastapi import FastAPI
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .db import init_db
from .seed import ensure_default_admin, ensure_demo_data
from .routers import auth, users, programs, courses, bimesters
from .routers import classes, class_enrollments, students, dashboard


logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if settings.is_production:
        ensure_default_admin(force_password_reset=True)
    else:
        ensure_demo_data()
    logger.info("%s started (env=%s)", settings.app_name, settings.environment)
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(programs.router)
app.include_router(courses.router)
app.include_router(bimesters.router)
app.include_router(classes.router)
app.include_router(class_enrollments.router)
app.include_router(students.router)
app.include_router(dashboard.router)


@app.get("/")
def root():
    return {"status": "ok", "service": settings.app_name}
