from fastapi import APIRouter
from autopost.api.routes.health import router as health
from autopost.api.routes.jobs import router as jobs
from autopost.api.routes.pipeline import router as pipeline
from autopost.api.routes.accounts import router as accounts
from autopost.api.routes.cron import router as cron

router = APIRouter()
router.include_router(health)
router.include_router(jobs)
router.include_router(pipeline)
router.include_router(accounts)
router.include_router(cron)
