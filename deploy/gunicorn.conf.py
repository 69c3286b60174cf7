"""
Gunicorn configuration for Reverie.
All settings are driven from environment variables for container deployment.
"""

from __future__ import annotations

import logging
import multiprocessing
import os

# ===== Server Binding =====
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
backlog = int(os.environ.get("GUNICORN_BACKLOG", "2048"))

# ===== Worker Settings =====
# Pattern analysis blocks on the model call; threads keep other requests moving.
worker_class = os.environ.get("GUNICORN_WORKER_CLASS", "gthread")
workers = int(os.environ.get("GUNICORN_WORKERS", str(multiprocessing.cpu_count() * 2 + 1)))
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
max_requests = int(os.environ.get("GUNICORN_MAX_REQUESTS", "10000"))
max_requests_jitter = int(os.environ.get("GUNICORN_MAX_REQUESTS_JITTER", "1000"))

# ===== Timeout Settings =====
# Must exceed PATTERN_MODEL_TIMEOUT_SECONDS (180 by default).
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "210"))
graceful_timeout = int(os.environ.get("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.environ.get("GUNICORN_KEEPALIVE", "5"))

# ===== Logging =====
accesslog = os.environ.get("GUNICORN_ACCESSLOG", "-")
errorlog = os.environ.get("GUNICORN_ERRORLOG", "-")
loglevel = os.environ.get("GUNICORN_LOGLEVEL", "info")
capture_output = True
access_log_format = os.environ.get(
    "GUNICORN_ACCESS_LOG_FORMAT",
    '{"timestamp": "%(t)s", "remote": "%(h)s", "request": "%(r)s", '
    '"status": %(s)s, "bytes": %(b)s, "response_time": %(D)s, "pid": %(p)s}',
)

# ===== Request Limits =====
limit_request_line = int(os.environ.get("GUNICORN_LIMIT_REQUEST_LINE", "8190"))
limit_request_fields = int(os.environ.get("GUNICORN_LIMIT_REQUEST_FIELDS", "100"))
forwarded_allow_ips = os.environ.get("GUNICORN_FORWARDED_ALLOW_IPS", "*")
proc_name = os.environ.get("GUNICORN_PROC_NAME", "reverie")
wsgi_app = "reverie.wsgi:app"


def when_ready(server):
    logging.getLogger(__name__).info(
        "Gunicorn ready on %s: workers=%s threads=%s timeout=%ss", bind, workers, threads, timeout
    )


def worker_abort(worker):
    """Called when a worker is timed out and is being replaced."""
    logging.getLogger(__name__).warning("Worker %s timed out (>%ss), aborting", worker.pid, timeout)


def worker_int(worker):
    """Cancel in-flight pattern analyses so their model calls stop before the worker exits."""
    app = getattr(worker, "wsgi", None)
    registry = getattr(app, "extensions", {}).get("pattern_cancellations")
    if registry is not None:
        cancelled = registry.cancel_all()
        logging.getLogger(__name__).warning("Worker %s interrupted, cancelled %s analyses", worker.pid, cancelled)
