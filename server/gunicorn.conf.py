"""Gunicorn configuration for production deployment.

Reads the same environment variables as core/config.py.

Usage:
    gunicorn main:app -c gunicorn.conf.py
"""
import os
import multiprocessing

host = os.getenv("HOST", "0.0.0.0")
port = os.getenv("PORT", "3010")
workers_env = os.getenv("WORKERS", "0")  # 0 = auto
log_level = os.getenv("LOG_LEVEL", "INFO").lower()
debug = os.getenv("DEBUG", "false").lower() == "true"

bind = f"{host}:{port}"

# Every worker opens its own Redis pools; locks and counters live in Redis
# so workers coordinate without shared memory.
workers_count = int(workers_env)
workers = workers_count if workers_count > 0 else (multiprocessing.cpu_count() * 2 + 1)
worker_class = "uvicorn.workers.UvicornWorker"

timeout = int(os.getenv("GUNICORN_TIMEOUT", "30"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "15"))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))

max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", "10000"))
max_requests_jitter = int(os.getenv("GUNICORN_MAX_REQUESTS_JITTER", "1000"))

accesslog = "-" if not debug else None
errorlog = "-"
loglevel = log_level

proc_name = "accounts-backend"

# Pools must be created after fork, inside each worker's event loop
preload_app = False

# Only these proxies may set the client address through X-Forwarded-For
forwarded_allow_ips = os.getenv("FORWARDED_ALLOW_IPS", "127.0.0.1")
