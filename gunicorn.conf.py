# ============================================
# Gunicorn Configuration for Production
# ============================================

import os
import multiprocessing

# Server socket
bind = os.getenv('GUNICORN_BIND', '0.0.0.0:5000')
backlog = 2048

# Worker processes
workers = int(os.getenv('GUNICORN_WORKERS', multiprocessing.cpu_count() * 2 + 1))
worker_class = 'sync'
timeout = int(os.getenv('GUNICORN_TIMEOUT', 120))  # slow MySQL connections
keepalive = 5
graceful_timeout = 30

# Process naming
proc_name = 'bakery-api'

# Logging
errorlog = '-'
accesslog = '-'
loglevel = os.getenv('GUNICORN_LOG_LEVEL', 'info')
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

preload_app = True
