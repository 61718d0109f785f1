import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('patientflow')

# every CELERY_* setting from Django settings
app.config_from_object('django.conf:settings', namespace='CELERY')

# picks up patientflow/tasks.py
app.autodiscover_tasks()
