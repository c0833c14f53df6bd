# ==============================================================================
# app_pdv - Punto de venta e inventario sobre un backend alojado
# ==============================================================================
# Uso:
#   from app_pdv.main import create_app
#   app = create_app()
# ==============================================================================
