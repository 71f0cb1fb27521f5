from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from autopost.api.deps import get_orchestrator, rate_limit
from autopost.core.config import pipeline_config
from autopost.core.enums import JobStatus
from autopost.core.rate_limit import GENEROUS, MODERATE, STRICT
from autopost.db.repositories import JobRepository
from autopost.db.session import get_db
from autopost.schemas.job import (
    BatchSummaryOut, BulkImportIn, JobCreate, JobCreateFromProduct, JobOut, JobProgressOut, RetryIn,
)
from autopost.schemas.pipeline import QueuedOut
from autopost.services.posting_scheduler import PostingScheduler
from autopost.workers.orchestrator import PipelineOrchestrator

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("", response_model=list[JobOut], dependencies=[Depends(rate_limit(GENEROUS, "jobs"))])
def list_jobs(status: JobStatus | None = None, limit: int = Query(default=100, ge=1, le=500),
              db: Session = Depends(get_db)):
    return JobRepository(db).list(status.value if status else None, limit)


@router.get("/progress", response_model=list[JobProgressOut], dependencies=[Depends(rate_limit(GENEROUS, "progress"))])
def job_progress(ids: str = Query(..., description="Comma-separated job ids"),
                 orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    job_ids = [i.strip() for i in ids.split(",") if i.strip()]
    if not job_ids:
        raise HTTPException(status_code=400, detail="ids is required")
    return orchestrator.job_progress(job_ids[:100])


@router.post("", response_model=JobOut, dependencies=[Depends(rate_limit(MODERATE, "jobs-write"))])
def create_job(body: JobCreate, db: Session = Depends(get_db)):
    images = list(dict.fromkeys(u for u in body.image_urls if u))
    job = JobRepository(db).create(
        product_id=body.product_id or f"{body.platform}-manual-{uuid4().hex[:8]}",
        product_name=body.product_name,
        affiliate_url=body.affiliate_url,
        platform=body.platform,
        caption=body.caption,
        image_url=images[0] if images else None,
        image_urls=images,
        status=JobStatus.PENDING.value,
        progress=0,
        progress_step="Created",
        retry_count=0,
    )
    db.commit()
    return job


@router.post("/from-product", response_model=JobOut, dependencies=[Depends(rate_limit(MODERATE, "jobs-write"))])
def create_job_from_product(body: JobCreateFromProduct,
                            orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    try:
        job, _ = orchestrator.create_job_from_product(body.product_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return job


@router.post("/bulk-import", response_model=BatchSummaryOut, dependencies=[Depends(rate_limit(STRICT, "bulk"))])
def bulk_import(body: BulkImportIn, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    if not body.product_ids:
        raise HTTPException(status_code=400, detail="product_ids is empty")
    return orchestrator.create_jobs_from_products(body.product_ids)


@router.post("/retry", response_model=BatchSummaryOut | QueuedOut,
             dependencies=[Depends(rate_limit(STRICT, "bulk"))])
def retry_jobs(body: RetryIn, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    if not body.job_ids:
        raise HTTPException(status_code=400, detail="job_ids is empty")
    if body.background:
        from autopost.workers.queue import enqueue_render
        from autopost.workers.jobs import retry_jobs_job
        rq_job = enqueue_render(retry_jobs_job, body.job_ids, body.run_pipeline)
        return QueuedOut(rq_job_id=rq_job.id)
    return orchestrator.retry_jobs(body.job_ids, run_pipeline=body.run_pipeline)


@router.get("/{job_id}", response_model=JobOut)
def get_job(job_id: str, db: Session = Depends(get_db)):
    job = JobRepository(db).get_by_id(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/{job_id}/cancel", response_model=JobOut, dependencies=[Depends(rate_limit(MODERATE, "jobs-write"))])
def cancel_job_schedule(job_id: str, db: Session = Depends(get_db)):
    scheduler = PostingScheduler(db, pipeline_config)
    if not scheduler.cancel_scheduled_job(job_id):
        raise HTTPException(status_code=409, detail="Job is not a scheduled PENDING job")
    return JobRepository(db).get_by_id(job_id)


@router.post("/{job_id}/reschedule", response_model=JobOut, dependencies=[Depends(rate_limit(MODERATE, "jobs-write"))])
def reschedule_job(job_id: str, db: Session = Depends(get_db)):
    scheduler = PostingScheduler(db, pipeline_config)
    if scheduler.reschedule_failed_job(job_id) is None:
        raise HTTPException(status_code=409, detail="Only FAILED jobs with a video can be rescheduled")
    return JobRepository(db).get_by_id(job_id)
