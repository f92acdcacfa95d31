from celery import Celery
from kombu import Queue

from core.config import settings

NOTIFICATIONS_QUEUE = "notifications"

celery_app = Celery(
    "canteen_preorder",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tasks.email_tasks"]
)

# Every task is routed to the notifications queue
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=60 * 60,
    timezone="UTC",
    enable_utc=True,
    task_queues=(Queue(NOTIFICATIONS_QUEUE),),
    task_default_queue=NOTIFICATIONS_QUEUE,
    task_routes={"tasks.email_tasks.*": {"queue": NOTIFICATIONS_QUEUE}},
    task_time_limit=2 * 60,
    task_soft_time_limit=90,
    worker_prefetch_multiplier=1,
    task_always_eager=settings.TESTING,
    task_eager_propagates=False,
)
