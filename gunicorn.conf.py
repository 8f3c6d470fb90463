#!/usr/bin/env python3
"""
Gunicorn configuration file for the kiosk registration service
"""

import os

# Server socket
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
backlog = 64

# A kiosk event serves a handful of devices; the in-memory rate limiter
# is per process, so keep a single worker with a few threads
workers = 1
worker_class = "gthread"
threads = 4
timeout = 30
keepalive = 2

# Restart workers after this many requests, to help prevent memory leaks
max_requests = 1000
max_requests_jitter = 100

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s"'

# Process naming
proc_name = "kiosk_registration"

# Daemon mode
daemon = False

# Preload application for better performance
preload_app = True

# Application callable
wsgi_app = "wsgi:app"

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190

def on_starting(server):
    """Called just before the master process is initialized."""
    server.log.info("Starting kiosk registration service")

def on_reload(server):
    """Called to recycle workers during a reload via SIGHUP."""
    server.log.info("Reloading kiosk registration service")

def when_ready(server):
    """Called just after the server is started."""
    server.log.info("Kiosk registration service is ready. Listening on: %s", server.address)

def on_exit(server):
    """Called just before exiting."""
    server.log.info("Shutting down kiosk registration service")
