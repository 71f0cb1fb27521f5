import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from autopost.core.logging import setup_logging
from autopost.core.settings import settings
from autopost.api.router import router
from autopost.db.session import engine
from autopost.db.base import Base
from autopost import models  # noqa: F401  (register tables)

setup_logging(settings.log_level, settings.log_structured)

app = FastAPI(title="TikTok Autopost", version="0.1.0")

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

app.include_router(router)

os.makedirs(settings.media_root, exist_ok=True)
app.mount("/static", StaticFiles(directory=settings.media_root), name="static")
