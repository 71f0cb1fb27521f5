from fastapi import APIRouter, Depends

from autopost.api.deps import get_orchestrator, require_cron_secret
from autopost.workers.orchestrator import PipelineOrchestrator
from autopost.workers.scheduler import tick

router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.post("/tick", dependencies=[Depends(require_cron_secret)])
def cron_tick(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """External cron trigger: same pass as the scheduler loop."""
    return tick(orchestrator)
