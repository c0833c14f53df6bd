# ==============================================================================
# CONFIGURACIÓN DE GUNICORN
# ==============================================================================
# Gunicorn lee este archivo automáticamente desde el directorio de trabajo:
#   gunicorn wsgi:app
#
# Workers con hilos: los streams de tiempo real (/api/realtime) ocupan un
# hilo cada uno mientras están abiertos.
# ==============================================================================

import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"
worker_class = 'gthread'
workers = int(os.environ.get('WEB_CONCURRENCY', '2'))
threads = int(os.environ.get('PDV_GUNICORN_THREADS', '16'))
timeout = 120
