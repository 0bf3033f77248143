from celery import Celery

from schoolfin.config import settings

celery_app = Celery(
    "schoolfin",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["schoolfin.infrastructure.tasks.fee_structure_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)
