"""Gunicorn configuration for the BacTunis AI service.

Usage:
    gunicorn main:app -c deploy/gunicorn.conf.py

The service is I/O-bound: each request waits on Gemini/Groq (5-60s), and a
request that walks every retry and fallback can take over two minutes.

Cooldowns and the upload cache are per worker process, so each worker
discovers a provider's quota exhaustion on its own.
"""

import multiprocessing
import os

# ─── Server socket ──────────────────────────────────────────────

bind = os.getenv("BIND", "0.0.0.0:5000")
backlog = 2048

# ─── Worker processes ───────────────────────────────────────────
#
# For async ASGI: 1 worker per core.  Every worker multiplies the
# outbound LLM concurrency (MAX_CONCURRENT_LLM per worker).

workers = int(os.getenv("WORKERS", min(multiprocessing.cpu_count(), 4)))
worker_class = "uvicorn.workers.UvicornWorker"

# ─── Timeouts ───────────────────────────────────────────────────
#
# Must exceed REQUEST_DEADLINE_SECONDS (default 150s).

timeout = 180
graceful_timeout = 60
keepalive = 120

# ─── Worker recycling ──────────────────────────────────────────

max_requests = 3000
max_requests_jitter = 500

# ─── Logging ────────────────────────────────────────────────────

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info")
access_log_format = (
    '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" %(D)sμs'
)

proc_name = "bactunis-ai"

# ─── Server hooks ───────────────────────────────────────────────


def on_starting(server):
    """Called just before the master process is initialized."""
    server.log.info(
        "Starting BacTunis AI — workers=%d, timeout=%ds, bind=%s",
        workers,
        timeout,
        bind,
    )


def post_fork(server, worker):
    server.log.info("Worker spawned (pid: %s)", worker.pid)
