# backend/gunicorn_conf.py

# Gunicorn config file: gunicorn -c gunicorn_conf.py orchestrator.main:app

import os

bind = os.getenv("BIND", "0.0.0.0:8000")
workers = int(os.getenv("WORKERS", "2"))
worker_class = "uvicorn.workers.UvicornWorker"

# Pipelines may wait on completions up to PIPELINE_TIMEOUT_SECONDS
timeout = 60
graceful_timeout = 30

# Settings for running behind a reverse proxy like Nginx
forwarded_allow_ips = "*"

# --- Logging ---
# structlog writes to stdout; gunicorn only needs its error log
accesslog = None
errorlog = "-"
loglevel = "info"
