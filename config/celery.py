import os
from celery import Celery
from django.conf import settings

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()

# Carts and bulk-upload drafts live in sessions: purge the expired ones nightly
from celery.schedules import crontab
app.conf.beat_schedule = {
    "clear-expired-sessions": {
        "task": "apps.ordering.tasks.clear_expired_sessions",
        "schedule": crontab(minute=0, hour=4),
    },
}
