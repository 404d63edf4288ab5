"""
=============================================================================
LEDGER.PY — Libro de Completados
=============================================================================
Registro de "hábito X completado el día D". Sirve igual para hábitos de
reto (HabitLog) y personales (PersonalHabitLog): ambas tablas tienen
habit_id + date_completed.

Regla de oro: UN registro por hábito por día.
  - Si ya existe → Conflict (nunca se sobreescribe).
  - La restricción única de la tabla es la que decide si dos peticiones
    llegan a la vez: la segunda choca con IntegrityError → Conflict.
"""

import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import Conflict, NotFound
from timezones import day_bounds, local_day

logger = logging.getLogger("rachaviva.ledger")


def find_log(db: Session, log_model, habit_id: int, day: date, timezone: str):
    """El registro de ese día local, o None"""
    start, end = day_bounds(timezone, day)
    return db.query(log_model).filter(
        log_model.habit_id == habit_id,
        log_model.date_completed >= start,
        log_model.date_completed < end
    ).first()


def record(db: Session, log_model, habit_id: int, day: date, timezone: str):
    """
    Registra el completado. No hace commit: quien llama decide cuándo.
    Lanza Conflict si ya había un registro para ese hábito y día.
    """
    if find_log(db, log_model, habit_id, day, timezone):
        raise Conflict("El hábito ya está registrado para esta fecha", date=day.isoformat())

    start, _ = day_bounds(timezone, day)
    log = log_model(habit_id=habit_id, date_completed=start)
    db.add(log)
    try:
        db.flush()
    except IntegrityError:
        # Otra petición lo insertó entre nuestra consulta y el flush
        db.rollback()
        logger.warning(f"⚠️ Registro duplicado concurrente: hábito {habit_id}, día {day}")
        raise Conflict("El hábito ya está registrado para esta fecha", date=day.isoformat())
    return log


def remove(db: Session, log_model, habit_id: int, day: date, timezone: str):
    """Borra el registro de ese día. NotFound si no existía."""
    log = find_log(db, log_model, habit_id, day, timezone)
    if not log:
        raise NotFound("No hay registro para esta fecha", date=day.isoformat())
    db.delete(log)
    db.flush()
    return log


def list_instants(db: Session, log_model, habit_id: int) -> list[datetime]:
    """Instantes guardados (medianoches locales en UTC), en orden"""
    rows = db.query(log_model.date_completed).filter(
        log_model.habit_id == habit_id
    ).order_by(log_model.date_completed).all()
    return [row[0] for row in rows]


def list_days(db: Session, log_model, habit_id: int, timezone: str) -> set[date]:
    """Días locales completados"""
    return {local_day(instant, timezone) for instant in list_instants(db, log_model, habit_id)}


def habits_logged_on(db: Session, log_model, habit_ids: list[int], day: date, timezone: str) -> set[int]:
    """De estos hábitos, cuáles tienen registro ese día"""
    if not habit_ids:
        return set()
    start, end = day_bounds(timezone, day)
    rows = db.query(log_model.habit_id).filter(
        log_model.habit_id.in_(habit_ids),
        log_model.date_completed >= start,
        log_model.date_completed < end
    ).all()
    return {row[0] for row in rows}
