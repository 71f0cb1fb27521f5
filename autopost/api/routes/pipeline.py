from fastapi import APIRouter, Depends, HTTPException, Query

from autopost.api.deps import get_orchestrator, rate_limit
from autopost.core.rate_limit import MODERATE, STRICT
from autopost.schemas.job import BatchSummaryOut
from autopost.schemas.pipeline import (
    NextSlotOut, PipelineResultOut, ProcessPendingIn, QueuedOut, RunPipelineIn, SchedulerStatsOut, VideoOptionsIn,
)
from autopost.services.compositor import WatermarkSpec
from autopost.workers.orchestrator import PipelineOptions, PipelineOrchestrator, VideoOptions

router = APIRouter(prefix="/api", tags=["pipeline"])


def to_video_options(body: VideoOptionsIn) -> VideoOptions:
    watermark = None
    wm = body.watermark
    if wm and wm.enabled:
        if wm.type.value == "text" and not wm.text:
            raise HTTPException(status_code=400, detail="Text watermark needs text")
        if wm.type.value == "image" and not wm.image_path:
            raise HTTPException(status_code=400, detail="Image watermark needs image_path")
        watermark = WatermarkSpec(
            type=wm.type.value,
            position=wm.position.value,
            opacity=wm.opacity,
            scale=wm.scale,
            margin=wm.margin,
            image_path=wm.image_path,
            text=wm.text,
        )
    return VideoOptions(
        background_music=body.background_music,
        music_volume=body.music_volume,
        show_text_overlay=body.show_text_overlay,
        text_style=body.text_style.value if body.text_style else None,
        watermark=watermark,
        backend=body.backend.value,
        image_style=body.image_style,
    )


@router.post("/pipeline/run", response_model=PipelineResultOut | QueuedOut,
             dependencies=[Depends(rate_limit(STRICT, "pipeline"))])
def run_pipeline(body: RunPipelineIn, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    options = PipelineOptions(
        generate_hooks=body.generate_hooks,
        generate_video=body.generate_video,
        auto_schedule=body.auto_schedule,
        video=to_video_options(body.video),
    )
    if body.background:
        from autopost.workers.queue import enqueue_render
        from autopost.workers.jobs import run_pipeline_job
        rq_job = enqueue_render(run_pipeline_job, body.job_id, options)
        return QueuedOut(rq_job_id=rq_job.id)

    result = orchestrator.run_auto_pipeline(body.job_id, options)
    if result.error == "Job not found":
        raise HTTPException(status_code=404, detail="Job not found")
    return result


@router.post("/pipeline/process-pending", response_model=BatchSummaryOut,
             dependencies=[Depends(rate_limit(STRICT, "pipeline"))])
def process_pending(body: ProcessPendingIn | None = None,
                    orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    limit = body.limit if body else 5
    return orchestrator.process_pending_pipelines(limit)


@router.get("/pipeline/next-slot", response_model=NextSlotOut,
            dependencies=[Depends(rate_limit(MODERATE, "pipeline-read"))])
def next_slot(account_id: str | None = Query(default=None),
              orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    return NextSlotOut(account_id=account_id, scheduled_at=orchestrator.next_posting_slot(account_id))


@router.get("/scheduler/stats", response_model=SchedulerStatsOut,
            dependencies=[Depends(rate_limit(MODERATE, "pipeline-read"))])
def scheduler_stats(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    return orchestrator.scheduler_stats()


@router.post("/pipeline/post-due", response_model=BatchSummaryOut | QueuedOut,
             dependencies=[Depends(rate_limit(STRICT, "pipeline"))])
def post_due_jobs(background: bool = Query(default=True),
                  orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Posting sweep: publish every due job. Runs on the io queue unless background=false."""
    if background:
        from autopost.workers.queue import enqueue_io
        from autopost.workers.jobs import process_scheduled_jobs_job
        rq_job = enqueue_io(process_scheduled_jobs_job)
        return QueuedOut(rq_job_id=rq_job.id)
    return orchestrator.process_scheduled_jobs()
