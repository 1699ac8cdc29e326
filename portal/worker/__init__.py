"""Background reconciliation.

The HTTP API only *emits* work through ``dispatch``; the Celery app and task
definitions live in ``celery_app`` and ``tasks`` and are imported lazily.
"""
