import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("meeting_rooms")

# Broker, timezone and beat schedule come from CELERY_* settings.
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
