"""
Detached tasks.

Best-effort work (API key last-used updates, webhook delivery, the operational
log channel) never blocks a request. ``spawn_background`` runs it on a daemon
thread, deduplicated by task id; ``enqueue_task`` prefers Celery when a broker
is configured and falls back to a thread otherwise. Failures are logged and
discarded.

Only coalescing jobs (the last-used touch) share a fixed id. One-shot jobs
take a random suffix from ``one_shot_task_id`` so they never dedupe.
"""

from __future__ import annotations

import logging
import os
import secrets
import threading

from celery import Celery

from ..metrics import BACKGROUND_TASKS

logger = logging.getLogger("pixedge.background")

CELERY_BROKER_URL = (os.environ.get("PIXEDGE_CELERY_BROKER_URL") or "").strip()
CELERY_RESULT_BACKEND = (
    os.environ.get("PIXEDGE_CELERY_RESULT_BACKEND") or ""
).strip() or CELERY_BROKER_URL
CELERY_ENABLED = bool(CELERY_BROKER_URL)

_background_lock = threading.Lock()
_background_tasks: set[str] = set()


def configure_celery(broker_url: str = CELERY_BROKER_URL, backend: str = CELERY_RESULT_BACKEND):
    if not broker_url:
        return None
    celery = Celery("pixedge", broker=broker_url, backend=backend or broker_url)
    celery.conf.update(
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
    )
    return celery


celery_app = configure_celery() if CELERY_ENABLED else None


def _update_background_tasks_gauge() -> None:
    if BACKGROUND_TASKS is not None:
        BACKGROUND_TASKS.set(len(_background_tasks))


def one_shot_task_id(prefix: str) -> str:
    """Task id that never collides with another run of the same job."""
    return f"{prefix}:{secrets.token_hex(4)}"


def running_tasks() -> set[str]:
    with _background_lock:
        return set(_background_tasks)


def spawn_background(task_id: str, fn, *args, **kwargs) -> bool:
    with _background_lock:
        if task_id in _background_tasks:
            return False
        _background_tasks.add(task_id)
        _update_background_tasks_gauge()

    def runner():
        try:
            fn(*args, **kwargs)
        except Exception as exc:
            logger.warning("background task %s failed: %s", task_id, exc)
        finally:
            with _background_lock:
                _background_tasks.discard(task_id)
                _update_background_tasks_gauge()

    t = threading.Thread(target=runner, daemon=True, name=f"pixedge-{task_id}")
    t.start()
    return True


def enqueue_task(task_id: str, task_name: str, fn, *args, **kwargs) -> bool:
    if celery_app is not None:
        try:
            celery_app.send_task(task_name, args=args, kwargs=kwargs, task_id=task_id)
            return True
        except Exception as exc:
            logger.warning("Celery enqueue failed for %s: %s", task_id, exc)
    return spawn_background(task_id, fn, *args, **kwargs)
