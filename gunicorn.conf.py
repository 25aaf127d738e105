"""
Gunicorn configuration: Uvicorn workers serving storefront.main:app.

Each worker owns its own dashboard aggregator, so refresh single-flight is
per worker.
"""

import multiprocessing
import os

bind = os.getenv("BIND", "0.0.0.0:5000")
backlog = 2048

workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 10000
max_requests_jitter = 1000
timeout = 120
keepalive = 5
graceful_timeout = 30

proc_name = "storefront-api"

errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)sus'
