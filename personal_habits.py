"""
=============================================================================
PERSONAL_HABITS.PY — Hábitos Personales
=============================================================================
Hábitos que el usuario sigue por su cuenta, sin reto:
  - Sin vidas, sin victoria ni derrota.
  - Mismo libro de completados (un registro por hábito por día).
  - Rachas y estadísticas con streaks.py.

Títulos únicos (sin distinguir mayúsculas) entre los hábitos NO archivados.
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

import ledger
from errors import Conflict, InvalidState, NotFound, ValidationFailed
from models import PersonalHabit, PersonalHabitLog, User
from streaks import build_habit_analytics, compute_streaks
from timezones import local_day

logger = logging.getLogger("rachaviva.personal_habits")


def get_owned(db: Session, user: User, habit_id: int) -> PersonalHabit:
    habit = db.query(PersonalHabit).filter(
        PersonalHabit.id == habit_id, PersonalHabit.user_id == user.id
    ).first()
    if not habit:
        raise NotFound("Hábito no encontrado")
    return habit


def _ensure_unique_title(db: Session, user: User, title: str, exclude_id: Optional[int] = None):
    query = db.query(PersonalHabit).filter(
        PersonalHabit.user_id == user.id,
        PersonalHabit.archived == False,  # noqa: E712
        func.lower(PersonalHabit.title) == title.lower()
    )
    if exclude_id is not None:
        query = query.filter(PersonalHabit.id != exclude_id)
    if query.first():
        raise Conflict("Ya tienes un hábito con este título")


# =============================================================================
# ===================== CRUD ==================================================
# =============================================================================

def create_habit(db: Session, user: User, title: str, description: Optional[str] = None,
                 color: Optional[str] = None) -> PersonalHabit:
    _ensure_unique_title(db, user, title)
    habit = PersonalHabit(user_id=user.id, title=title, description=description, color=color)
    db.add(habit)
    db.commit()
    db.refresh(habit)
    logger.info(f"➕ Hábito personal creado: {habit.title} (user: {user.name})")
    return habit


def list_habits(db: Session, user: User, include_archived: bool = False) -> list[PersonalHabit]:
    query = db.query(PersonalHabit).filter(PersonalHabit.user_id == user.id)
    if not include_archived:
        query = query.filter(PersonalHabit.archived == False)  # noqa: E712
    return query.order_by(PersonalHabit.created_at.desc(), PersonalHabit.id.desc()).all()


def update_habit(db: Session, user: User, habit_id: int, changes: dict) -> PersonalHabit:
    """`changes` → solo los campos enviados (model_dump(exclude_unset=True))"""
    habit = get_owned(db, user, habit_id)

    title = changes.get("title")
    if title and title != habit.title and not habit.archived:
        _ensure_unique_title(db, user, title, exclude_id=habit.id)

    for key, value in changes.items():
        if key == "title" and not value:
            continue
        setattr(habit, key, value)

    db.commit()
    db.refresh(habit)
    return habit


def delete_habit(db: Session, user: User, habit_id: int):
    habit = get_owned(db, user, habit_id)
    db.delete(habit)  # cascade → personal_habit_logs
    db.commit()


def toggle_archive(db: Session, user: User, habit_id: int) -> PersonalHabit:
    """Archiva o desarchiva. Al desarchivar se vuelve a exigir título único."""
    habit = get_owned(db, user, habit_id)
    if habit.archived:
        _ensure_unique_title(db, user, habit.title, exclude_id=habit.id)
    habit.archived = not habit.archived
    db.commit()
    db.refresh(habit)
    return habit


# =============================================================================
# ===================== MARCAR / DESMARCAR ====================================
# =============================================================================

def log_habit(db: Session, user: User, habit_id: int, timezone: str, now: datetime,
              day: Optional[date] = None) -> PersonalHabitLog:
    habit = get_owned(db, user, habit_id)
    if habit.archived:
        raise InvalidState("No se puede registrar un hábito archivado")

    today = local_day(now, timezone)
    if day is None:
        day = today
    if day > today:
        raise ValidationFailed("No se pueden registrar días futuros", date=day.isoformat())

    log = ledger.record(db, PersonalHabitLog, habit.id, day, timezone)
    db.commit()
    db.refresh(log)
    return log


def unlog_habit(db: Session, user: User, habit_id: int, day: date, timezone: str):
    habit = get_owned(db, user, habit_id)
    ledger.remove(db, PersonalHabitLog, habit.id, day, timezone)
    db.commit()


def completed_today(db: Session, habit: PersonalHabit, timezone: str, now: datetime) -> bool:
    return ledger.find_log(db, PersonalHabitLog, habit.id, local_day(now, timezone), timezone) is not None


# =============================================================================
# ===================== ESTADÍSTICAS ==========================================
# =============================================================================

def get_habit_analytics(db: Session, user: User, habit_id: int, timezone: str, now: datetime) -> dict:
    habit = get_owned(db, user, habit_id)
    instants = ledger.list_instants(db, PersonalHabitLog, habit.id)
    return {"habit": habit, "analytics": build_habit_analytics(instants, timezone, now)}


def get_habits_summary(db: Session, user: User, timezone: str, now: datetime) -> dict:
    """Resumen de todos los hábitos no archivados"""
    habits = list_habits(db, user)
    today = local_day(now, timezone)

    summaries = []
    for habit in habits:
        instants = ledger.list_instants(db, PersonalHabitLog, habit.id)
        streak = compute_streaks(instants, timezone, now)
        summaries.append({
            "habit": habit,
            "current_streak": streak.current_streak,
            "longest_streak": streak.longest_streak,
            "total_completions": len(instants),
            "completed_today": any(local_day(i, timezone) == today for i in instants),
            "last_completed_date": streak.last_completed_date,
        })

    return {
        "total_habits": len(habits),
        "completed_today_count": sum(1 for s in summaries if s["completed_today"]),
        "habits": summaries,
    }
