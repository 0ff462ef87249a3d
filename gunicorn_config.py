"""Gunicorn configuration for production."""
import os

# Server socket
# Use PORT environment variable if available, otherwise default to 8000
port = os.getenv("PORT", "8000")
bind = f"0.0.0.0:{port}"
backlog = 2048

# Worker processes
# Exactly one worker: the engine keeps its conversations in process memory and
# must be the only writer of its storage namespace. Concurrency comes from
# threads; the engine serialises writes per conversation.
workers = 1
worker_class = "gthread"
threads = int(os.getenv("GUNICORN_THREADS", "8"))
timeout = 60
keepalive = 5
graceful_timeout = 30  # Time to wait for the worker to finish before killing it

# Logging
accesslog = "-"  # stdout
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

capture_output = True
enable_stdio_inheritance = True

# Process naming
proc_name = "suchak"

# Server mechanics
# create_app starts the outbox dispatcher thread, which has to live in the worker.
preload_app = False
daemon = False
pidfile = None
umask = 0
user = None
group = None
tmp_upload_dir = None
