from celery import Celery
from celery.schedules import crontab

from lms_analytics.core.config import settings
from lms_analytics.core.logging import setup_logging

setup_logging()

# Celery configuration
celery_app = Celery(
    "lms_analytics",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["lms_analytics.workers.predictive_tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
)

celery_app.conf.beat_schedule = {
    "daily-analytics-generation": {
        "task": "daily-analytics-generation",
        "schedule": crontab(hour=2, minute=0),
    },
    "weekly-trend-analysis": {
        "task": "weekly-trend-analysis",
        "schedule": crontab(hour=3, minute=0, day_of_week="sunday"),
    },
    "model-accuracy-validation": {
        "task": "model-accuracy-validation",
        "schedule": crontab(hour=1, minute=0),
    },
    "emergency-intervention-detection": {
        "task": "emergency-intervention-detection",
        "schedule": crontab(minute=0),
    },
    "schedule-intervention-reminders": {
        "task": "schedule-intervention-reminders",
        "schedule": crontab(hour=7, minute=0),
    },
}
