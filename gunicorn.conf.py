"""
Gunicorn configuration for the evidence engine API.

Usage:
    gunicorn evidence_engine.main:app -c gunicorn.conf.py

Job draining runs separately (scripts/run_worker.py or POST /internal/run_worker).
"""

import multiprocessing

# Bind to all interfaces on port 8000
bind = "0.0.0.0:8000"

# Worker processes: CPU cores * 2 + 1 (Gunicorn recommendation)
workers = multiprocessing.cpu_count() * 2 + 1

# Use Uvicorn's ASGI worker for FastAPI
worker_class = "uvicorn.workers.UvicornWorker"

# Request timeout (seconds); /internal/run_worker may wait on LLM calls
timeout = 120

# Keep-alive connections (seconds)
keepalive = 5

# Logging
accesslog = "-"  # stdout
errorlog = "-"   # stderr
loglevel = "info"
