from celery import Celery

from app.services.scheduler_config import get_celery_config

celery_app = Celery("paysync", include=["app.tasks.billing"])
celery_app.conf.update(get_celery_config())
