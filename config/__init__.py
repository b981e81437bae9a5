"""Top-level package for Django configuration.

Settings modules for each environment and the Celery application of the
meeting-room booking project.
"""

# Import the Celery application as soon as Django starts. Without this
# the shared task registry will not be populated.
from .celery import app as celery_app  # noqa: F401
