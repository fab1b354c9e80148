from fastapi import APIRouter
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from typing import Optional, Dict, Any
from socialsync.config import settings
from socialsync.deps import get_orchestrator
from socialsync.services.scheduler import run_once

router = APIRouter(prefix="/scheduler", tags=["scheduler"])

scheduler: Optional[BackgroundScheduler] = None
_cron: Optional[str] = None

@router.post("/run")
def run_now() -> Dict[str, Any]:
    return run_once(get_orchestrator())

@router.post("/start")
def start(cron: Optional[str] = None) -> Dict[str, Any]:
    # default from SYNC_CRON (hourly). Standard 5-field cron: m h dom mon dow
    global scheduler, _cron
    if scheduler and scheduler.running:
        return {"status": "already-running"}

    cron = cron or settings.sync_cron
    scheduler = BackgroundScheduler(timezone="UTC")
    trigger = CronTrigger.from_crontab(cron, timezone="UTC")
    scheduler.add_job(run_once, trigger, args=[get_orchestrator()], id="analytics_sync",
                      replace_existing=True, max_instances=1, coalesce=True)
    scheduler.start()
    _cron = cron
    return {"status": "started", "cron": cron}

@router.post("/stop")
def stop() -> Dict[str, Any]:
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        return {"status": "stopped"}
    return {"status": "not-running"}

@router.get("/status")
def status() -> Dict[str, Any]:
    running = bool(scheduler and scheduler.running)
    job = scheduler.get_job("analytics_sync") if running else None
    next_run = job.next_run_time if job else None
    return {
        "running": running,
        "cron": _cron if running else None,
        "next_run_time": next_run.isoformat() if next_run else None,
    }
