"""
=============================================================================
CONFIG.PY — Configuración de la Aplicación
=============================================================================
Todo lo que cambia entre tu PC y producción sale de variables de entorno.
Si la variable no existe, se usa un valor por defecto pensado para desarrollo.

Variables:
  DEFAULT_TIMEZONE → zona horaria para usuarios SIN preferencia guardada
  LOG_LEVEL        → nivel de logs ("DEBUG", "INFO", "WARNING"...)
  CORS_ORIGINS     → orígenes permitidos, separados por comas ("*" = todos)
  ADMIN_EMAIL / ADMIN_PASSWORD → si existen, se crea un admin al arrancar

DATABASE_URL vive en database.py y SECRET_KEY en auth.py, junto a quien las usa.
"""

import os

APP_NAME = "RachaViva"
APP_VERSION = "1.0.0"

# ─────────────────────────────────────────────────────────────────────────────
# ZONA HORARIA
# ─────────────────────────────────────────────────────────────────────────────
# Solo se aplica cuando el usuario no ha guardado la suya.
# Se valida al arrancar (main.py → lifespan) y se inyecta en app.state.

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Asia/Kolkata")

# ─────────────────────────────────────────────────────────────────────────────
# RETOS
# ─────────────────────────────────────────────────────────────────────────────

LIVES_ALLOWANCE = 5
# LIVES_ALLOWANCE → días fallados que se toleran antes de perder el reto.
# Constante: no se lee del entorno.

# ─────────────────────────────────────────────────────────────────────────────
# LOGS Y CORS
# ─────────────────────────────────────────────────────────────────────────────

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]

# ─────────────────────────────────────────────────────────────────────────────
# ADMIN INICIAL
# ─────────────────────────────────────────────────────────────────────────────

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Admin")
