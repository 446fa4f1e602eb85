from celery import Celery

from app.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "daftlink",
    broker=settings.celery_broker_url,
    include=["app.tasks.chain_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    beat_schedule={
        "sweep-expired-chains": {
            "task": "sweep_expired_chains",
            "schedule": float(settings.sweep_interval_seconds),
        },
    },
)
