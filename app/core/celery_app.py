from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging, task_postrun, task_prerun
from kombu import Exchange, Queue

from app.core.config import settings
from app.core.logging import bind_task_context, clear_task_context, setup_logging

# Create Celery instance
celery_app = Celery(
    "stackflow_crm",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "app.tasks.cleanup_tasks"
    ]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    result_expires=3600,

    # Task routing
    task_routes={
        "app.tasks.cleanup_tasks.*": {"queue": "cleanup"}
    },

    # Queue configuration
    task_queues=(
        Queue("default", Exchange("default"), routing_key="default"),
        Queue("cleanup", Exchange("cleanup"), routing_key="cleanup"),
    ),

    # Beat schedule for periodic tasks
    beat_schedule={
        "purge-trashed-projects": {
            "task": "app.tasks.cleanup_tasks.purge_trashed_projects",
            "schedule": crontab(hour=settings.TRASH_PURGE_HOUR, minute=0),  # Daily
        },
        "expire-stale-invitations": {
            "task": "app.tasks.cleanup_tasks.expire_stale_invitations",
            "schedule": 3600.0,  # Every hour
        },
    }
)

# Set Redis configuration for better performance
celery_app.conf.broker_transport_options = {
    "visibility_timeout": 3600,
    "socket_keepalive": True,
}


# Workers log through the app's structlog pipeline instead of Celery's own
@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    setup_logging()


@task_prerun.connect
def bind_task_logging_context(task_id=None, task=None, **kwargs):
    bind_task_context(task_id, task.name if task else None)


@task_postrun.connect
def clear_task_logging_context(**kwargs):
    clear_task_context()
