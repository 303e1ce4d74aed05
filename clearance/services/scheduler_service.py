"""
Smart Clearance
Scheduler Service — registry and leased execution of externally triggered jobs.

There is no in-process timer. Jobs are invoked by an external scheduler
(cron, Kubernetes CronJob, orchestrator) through ``flask run-job <name>`` or
the escalation API. Overlapping invocations are prevented by a lease on the
job's ScheduledJob row: a run starts only after a conditional update claims
an empty or expired ``locked_until``.

Architecture:
    - register_job: decorator that adds a job function to the registry
    - SchedulerService.run_job: lease → execute → record_run → release
    - ScheduledJob rows persist config, run statistics and the lease
"""

from __future__ import annotations

import logging
import os
import socket
import time
import uuid
from contextlib import contextmanager
from datetime import timedelta
from typing import Callable

from flask import Flask, current_app, has_app_context
from sqlalchemy import or_, update

from clearance.models import db
from clearance.models.scheduling import ScheduledJob
from clearance.utils.helpers import utcnow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("escalation_sweep")
        def escalation_sweep(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


def _default_schedule(job_name: str) -> dict:
    """Recommended trigger cadence, recorded for the external scheduler."""
    defaults = {
        "escalation_sweep": {"interval_hours": 6, "run_on_deploy": True,
                             "description": "Every 6 hours, plus once after deploy"},
    }
    return defaults.get(job_name, {"interval_hours": 24, "description": "Daily"})


class SchedulerService:
    """
    Job registry front-end.

    Jobs are executed within the Flask app context and guarded by a lease.
    """

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Bind the scheduler to the Flask app."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    @contextmanager
    def _job_context(cls):
        if has_app_context():
            yield current_app._get_current_object()
        else:
            with cls._app.app_context():
                yield cls._app

    @staticmethod
    def ensure_job_record(job_name: str) -> ScheduledJob:
        job = ScheduledJob.query.filter_by(job_name=job_name).first()
        if job:
            return job
        fn = _job_registry.get(job_name)
        job = ScheduledJob(
            job_name=job_name,
            description=((fn.__doc__ or "").strip().splitlines() or [f"Scheduled job: {job_name}"])[0],
            schedule_type="interval",
            schedule_config=_default_schedule(job_name),
            status="active",
            is_enabled=True,
            run_count=0,
            error_count=0,
        )
        db.session.add(job)
        db.session.commit()
        return job

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create missing ScheduledJob rows for every registered job."""
        with cls._job_context():
            return [cls.ensure_job_record(name) for name in _job_registry]

    # ── Lease ─────────────────────────────────────────────────────────────

    @staticmethod
    def _acquire_lease(job_name: str, owner: str, lease_seconds: int) -> bool:
        now = utcnow()
        stmt = (
            update(ScheduledJob)
            .where(
                ScheduledJob.job_name == job_name,
                or_(ScheduledJob.locked_until.is_(None), ScheduledJob.locked_until < now),
            )
            .values(locked_by=owner, locked_until=now + timedelta(seconds=lease_seconds))
            .execution_options(synchronize_session=False)
        )
        claimed = db.session.execute(stmt).rowcount == 1
        db.session.commit()
        return claimed

    @staticmethod
    def _release_lease(job_name: str, owner: str) -> None:
        stmt = (
            update(ScheduledJob)
            .where(ScheduledJob.job_name == job_name, ScheduledJob.locked_by == owner)
            .values(locked_by=None, locked_until=None)
            .execution_options(synchronize_session=False)
        )
        db.session.execute(stmt)
        db.session.commit()

    # ── Execution ─────────────────────────────────────────────────────────

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name under its lease.

        Returns:
            Dict with job_name, status (success / failed / skipped / error),
            duration_ms, result and error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app and not has_app_context():
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        with cls._job_context() as app:
            record = cls.ensure_job_record(job_name)
            if not record.is_enabled:
                return {"job_name": job_name, "status": "skipped", "reason": "disabled"}

            owner = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
            lease_seconds = int(app.config.get("SCHEDULER_LEASE_SECONDS", 900))
            if not cls._acquire_lease(job_name, owner, lease_seconds):
                logger.info("Job %s skipped: lease held by another run", job_name,
                            extra={"job_name": job_name})
                return {"job_name": job_name, "status": "skipped",
                        "reason": "already running"}

            start = time.monotonic()
            result = None
            error = None
            status = "success"
            try:
                result = fn(app)
            except Exception as exc:
                db.session.rollback()
                status = "failed"
                error = str(exc)
                logger.exception("Job %s failed: %s", job_name, exc,
                                 extra={"job_name": job_name})
            duration_ms = int((time.monotonic() - start) * 1000)

            try:
                record = ScheduledJob.query.filter_by(job_name=job_name).first()
                record.record_run(
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=error,
                )
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception("Failed to update job record for %s", job_name)
            finally:
                cls._release_lease(job_name, owner)

        logger.info("Job %s finished: %s (%dms)", job_name, status, duration_ms,
                    extra={"job_name": job_name, "duration_ms": duration_ms})
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a job."""
        if job_name not in _job_registry:
            return None
        job_record = cls.ensure_job_record(job_name)
        job_record.is_enabled = enabled
        job_record.status = "active" if enabled else "paused"
        db.session.commit()
        return job_record.to_dict()
