"""
=============================================================================
ERRORS.PY — Errores del Dominio
=============================================================================
Los servicios (challenges.py, ledger.py, personal_habits.py) NO conocen HTTP.
Lanzan estos errores y main.py los convierte en respuestas JSON:

  NotFound         → 404  (no existe o no es tuyo)
  Forbidden        → 403  (no tienes permiso)
  Conflict         → 409  (duplicado: log del día, título, inscripción activa)
  InvalidState     → 400  (el reto ya terminó, hábito archivado...)
  ValidationFailed → 422  (fecha futura, zona horaria inválida...)

`context` viaja en la respuesta junto a "detail" para que el cliente pueda
seguir sin volver a consultar (p. ej. el estado de la inscripción existente).
"""

from typing import Any


class DomainError(Exception):
    """Base de todos los errores esperados del dominio"""
    status_code = 500

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context


class NotFound(DomainError):
    status_code = 404


class Forbidden(DomainError):
    status_code = 403


class Conflict(DomainError):
    status_code = 409


class InvalidState(DomainError):
    status_code = 400


class ValidationFailed(DomainError):
    status_code = 422
