# ==============================================================================
# WSGI Entry Point - Para Gunicorn en producción
# ==============================================================================
# USO:
#   gunicorn wsgi:app          (lee gunicorn.conf.py: workers gthread)
#   gunicorn wsgi:app --bind 0.0.0.0:$PORT --worker-class gthread --threads 8
#
# Con PDV_REALTIME_ENABLED cada pestaña abierta mantiene un stream SSE que
# ocupa un hilo hasta PDV_REALTIME_STREAM_SECONDS. Con workers sync (uno por
# request) unas pocas pestañas bloquean la aplicación: usar gthread y
# dimensionar --threads por encima de las pestañas esperadas por worker.
#
# ESTRUCTURA DEL PROYECTO:
#   repo_root/           <- Directorio de trabajo (en sys.path automáticamente)
#   ├── wsgi.py          <- Este archivo
#   ├── pyproject.toml
#   └── app_pdv/         <- Paquete Python
#       ├── main.py
#       ├── services/
#       └── repositories/
#
# La configuración se lee del entorno (ver app_pdv/config.py).
# ==============================================================================

from app_pdv.main import create_app

app = create_app()

# ==============================================================================
# PUNTO DE ENTRADA
# ==============================================================================
# Para desarrollo local:
#   python wsgi.py
# ==============================================================================

if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5000)
