"""
=============================================================================
CHALLENGES.PY — Inscripciones, Hábitos de Reto y Progreso
=============================================================================
Une las piezas:
  ledger.py       → guarda "hábito X completado el día D"
  day_completed() → ¿están TODOS los hábitos de la inscripción ese día?
  progression.py  → decide racha, vidas, victoria o derrota
y lo guarda en la BD.

Flujo al marcar un hábito:
  1. Recalcular la inscripción (puede que ya esté perdida por días sin entrar)
  2. Registrar en el libro (si ya estaba → Conflict)
  3. ¿Día completo? → avanzar la máquina de estados
  4. Guardar log + progreso en UN commit

Flujo al leer el progreso:
  1. Recalcular (días que pasaron sin actividad cuestan vidas)
  2. Devolver

Escritura condicional: Enrollment tiene `version` (bloqueo optimista).
Si otra petición guardó antes desde la misma foto, SQLAlchemy lanza
StaleDataError y devolvemos Conflict en vez de pisar su progreso.
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

import ledger
from config import LIVES_ALLOWANCE
from errors import Conflict, InvalidState, NotFound, ValidationFailed
from models import Challenge, Enrollment, EnrollmentDay, EnrollmentStatus, Habit, HabitLog, User
from progression import (
    COMPLETED, FAILED, ProgressSnapshot, Transition,
    apply_day_completed, recompute
)
from timezones import day_start, local_day, to_naive_utc

logger = logging.getLogger("rachaviva.challenges")


# =============================================================================
# ===================== FOTO ↔ FILA ===========================================
# =============================================================================

def calendar_of(enrollment: Enrollment, timezone: str) -> str:
    """Zona en la que se cuentan los días del reto: la guardada al inscribirse"""
    return enrollment.timezone or timezone


def snapshot_of(enrollment: Enrollment, timezone: str) -> ProgressSnapshot:
    """Convierte la fila en una foto inmutable con días locales"""
    last_day = None
    if enrollment.last_completed_date is not None:
        last_day = local_day(enrollment.last_completed_date, timezone)
    return ProgressSnapshot(
        status=enrollment.status,
        start_day=local_day(enrollment.start_date, timezone),
        completed_days=enrollment.completed_days,
        current_streak=enrollment.current_streak,
        last_completed_day=last_day,
        lives_remaining=enrollment.lives_remaining,
        missed_days=enrollment.missed_days,
        completed_on=enrollment.completed_on,
        counted_days=frozenset(d.day for d in enrollment.counted_days),
    )


def _write_snapshot(enrollment: Enrollment, snapshot: ProgressSnapshot, timezone: str):
    enrollment.status = snapshot.status
    enrollment.completed_days = snapshot.completed_days
    enrollment.current_streak = snapshot.current_streak
    enrollment.lives_remaining = snapshot.lives_remaining
    enrollment.missed_days = snapshot.missed_days
    if snapshot.last_completed_day is not None:
        enrollment.last_completed_date = to_naive_utc(
            day_start(timezone, snapshot.last_completed_day)
        )
    if snapshot.completed_on is not None:
        enrollment.completed_on = to_naive_utc(snapshot.completed_on)

    already = {d.day for d in enrollment.counted_days}
    for day in sorted(snapshot.counted_days - already):
        enrollment.counted_days.append(EnrollmentDay(day=day))


def _commit(db: Session, enrollment: Enrollment, transition: Transition, timezone: str):
    """Guarda la transición (si cambió algo) junto con lo pendiente de la sesión"""
    if transition.changed:
        _write_snapshot(enrollment, transition.snapshot, timezone)
    try:
        db.commit()
    except (StaleDataError, IntegrityError):
        # Otra petición guardó antes desde la misma foto (o contó el mismo día)
        db.rollback()
        logger.warning(f"⚠️ Progreso desactualizado en inscripción {enrollment.id}")
        raise Conflict(
            "El progreso del reto cambió mientras se guardaba. Vuelve a intentarlo.",
            enrollment_id=enrollment.id
        )

    if transition.signal == COMPLETED:
        logger.info(f"🏆 Reto completado: inscripción {enrollment.id}")
    elif transition.signal == FAILED:
        logger.info(f"💀 Reto perdido: inscripción {enrollment.id} (sin vidas)")


def enrollment_state(enrollment: Enrollment) -> dict:
    """Estado resumido, para acompañar a los Conflict"""
    return {
        "id": enrollment.id,
        "status": enrollment.status,
        "completed_days": enrollment.completed_days,
        "current_streak": enrollment.current_streak,
        "lives_remaining": enrollment.lives_remaining,
        "missed_days": enrollment.missed_days,
    }


# =============================================================================
# ===================== RECÁLCULO PEREZOSO ====================================
# =============================================================================

def refresh_progress(db: Session, enrollment: Enrollment, timezone: str, now: datetime) -> Enrollment:
    """
    Aplica los días fallados pendientes antes de devolver o usar la inscripción.
    Se puede llamar las veces que haga falta: converge siempre al mismo estado.
    """
    timezone = calendar_of(enrollment, timezone)
    transition = recompute(snapshot_of(enrollment, timezone), now, timezone)
    if transition.changed:
        _commit(db, enrollment, transition, timezone)
    return enrollment


# =============================================================================
# ===================== AGREGADOR: ¿DÍA COMPLETO? =============================
# =============================================================================

def day_completed(db: Session, enrollment_id: int, day: date, timezone: str) -> bool:
    """
    True si TODOS los hábitos actuales de la inscripción tienen registro ese día.
    Sin hábitos nunca hay día completo (no se gana un reto vacío).
    """
    habit_ids = [
        row[0] for row in
        db.query(Habit.id).filter(Habit.enrollment_id == enrollment_id).all()
    ]
    if not habit_ids:
        return False
    logged = ledger.habits_logged_on(db, HabitLog, habit_ids, day, timezone)
    return len(logged) == len(habit_ids)


def habits_with_today_status(db: Session, enrollment: Enrollment, timezone: str, now: datetime) -> list[dict]:
    """Hábitos de la inscripción con completed_today en la zona de la inscripción"""
    timezone = calendar_of(enrollment, timezone)
    habits = db.query(Habit).filter(
        Habit.enrollment_id == enrollment.id
    ).order_by(Habit.created_at, Habit.id).all()

    today = local_day(now, timezone)
    logged = ledger.habits_logged_on(db, HabitLog, [h.id for h in habits], today, timezone)
    return [{"habit": h, "completed_today": h.id in logged} for h in habits]


# =============================================================================
# ===================== INSCRIPCIONES =========================================
# =============================================================================

def get_owned_enrollment(db: Session, user: User, enrollment_id: int) -> Enrollment:
    enrollment = db.query(Enrollment).filter(
        Enrollment.id == enrollment_id, Enrollment.user_id == user.id
    ).first()
    if not enrollment:
        raise NotFound("No estás inscrito en este reto")
    return enrollment


def join_challenge(
    db: Session, user: User, challenge_id: int, timezone: str, now: datetime,
    start_day: Optional[date] = None
) -> Enrollment:
    """
    Inscribe al usuario con 5 vidas y progreso a cero.

    - Si ya tiene una inscripción ACTIVA (tras recalcularla) → Conflict,
      con el estado de esa inscripción para que el cliente no tenga que
      volver a preguntar.
    - Si la anterior terminó (ganada o perdida) → se crea una nueva.
    """
    challenge = db.query(Challenge).filter(Challenge.id == challenge_id).first()
    if not challenge:
        raise NotFound("Reto no encontrado")

    existing = db.query(Enrollment).filter(
        Enrollment.user_id == user.id,
        Enrollment.challenge_id == challenge_id,
        Enrollment.status == EnrollmentStatus.active.value
    ).first()
    if existing:
        refresh_progress(db, existing, timezone, now)
        if existing.status == EnrollmentStatus.active.value:
            raise Conflict("Ya estás inscrito en este reto", enrollment=enrollment_state(existing))

    if start_day is None:
        start_day = local_day(now, timezone)

    enrollment = Enrollment(
        user_id=user.id,
        challenge_id=challenge_id,
        status=EnrollmentStatus.active.value,
        start_date=to_naive_utc(day_start(timezone, start_day)),
        timezone=timezone,
        completed_days=0,
        current_streak=0,
        lives_remaining=LIVES_ALLOWANCE,
        missed_days=0,
    )
    db.add(enrollment)
    try:
        db.commit()
    except IntegrityError:
        # Dos "join" a la vez: el índice único de activas deja pasar solo uno
        db.rollback()
        raise Conflict("Ya estás inscrito en este reto")
    db.refresh(enrollment)

    logger.info(f"🚀 {user.name} se inscribe en '{challenge.title}' (inscripción {enrollment.id})")
    return enrollment


def leave_challenge(db: Session, user: User, challenge_id: int):
    """
    Abandona el reto: borra la inscripción (la activa, o la más reciente)
    con sus hábitos y registros. No hay forma de recuperar el progreso.
    """
    enrollment = db.query(Enrollment).filter(
        Enrollment.user_id == user.id,
        Enrollment.challenge_id == challenge_id
    ).order_by(
        (Enrollment.status == EnrollmentStatus.active.value).desc(),
        Enrollment.created_at.desc(),
        Enrollment.id.desc()
    ).first()
    if not enrollment:
        raise NotFound("No estás inscrito en este reto")

    enrollment_id = enrollment.id
    db.delete(enrollment)  # cascade → habits → habit_logs
    db.commit()
    logger.info(f"🚪 {user.name} abandona el reto {challenge_id} (inscripción {enrollment_id} borrada)")


def list_enrollments(db: Session, user: User, timezone: str, now: datetime) -> list[Enrollment]:
    """Todas las inscripciones del usuario (la más nueva primero), recalculadas"""
    enrollments = db.query(Enrollment).filter(
        Enrollment.user_id == user.id
    ).order_by(Enrollment.created_at.desc(), Enrollment.id.desc()).all()

    for enrollment in enrollments:
        refresh_progress(db, enrollment, timezone, now)
    return enrollments


def get_enrollment_progress(db: Session, user: User, enrollment_id: int, timezone: str, now: datetime) -> dict:
    """
    Progreso de una inscripción, recalculado antes de devolverlo.

    Retorna:
      {
        "enrollment": Enrollment,
        "habits": [{"habit": Habit, "completed_today": bool}, ...],
        "today_completed": bool
      }
    """
    enrollment = get_owned_enrollment(db, user, enrollment_id)
    refresh_progress(db, enrollment, timezone, now)

    habits = habits_with_today_status(db, enrollment, timezone, now)
    return {
        "enrollment": enrollment,
        "habits": habits,
        "today_completed": bool(habits) and all(h["completed_today"] for h in habits),
    }


# =============================================================================
# ===================== HÁBITOS DEL RETO ======================================
# =============================================================================

def get_owned_habit(db: Session, user: User, habit_id: int) -> Habit:
    habit = db.query(Habit).filter(Habit.id == habit_id, Habit.user_id == user.id).first()
    if not habit:
        raise NotFound("Hábito no encontrado")
    return habit


def _ensure_unique_title(db: Session, enrollment_id: int, title: str, exclude_id: Optional[int] = None):
    query = db.query(Habit).filter(
        Habit.enrollment_id == enrollment_id,
        func.lower(Habit.title) == title.lower()
    )
    if exclude_id is not None:
        query = query.filter(Habit.id != exclude_id)
    if query.first():
        raise Conflict("Ya tienes un hábito con este título")


def create_habit(db: Session, user: User, enrollment_id: int, title: str, timezone: str, now: datetime) -> Habit:
    """
    Añade un hábito a la inscripción.
    Solo mientras esté activa y ANTES del primer día completado: añadir
    hábitos después invalidaría los días ya contados.
    """
    enrollment = get_owned_enrollment(db, user, enrollment_id)
    refresh_progress(db, enrollment, timezone, now)

    if enrollment.status != EnrollmentStatus.active.value:
        raise InvalidState("No se pueden añadir hábitos a un reto terminado", status=enrollment.status)
    if enrollment.completed_days > 0:
        raise InvalidState("No se pueden añadir hábitos cuando ya hay días completados")

    _ensure_unique_title(db, enrollment.id, title)

    habit = Habit(user_id=user.id, enrollment_id=enrollment.id, title=title)
    db.add(habit)
    db.commit()
    db.refresh(habit)
    logger.info(f"➕ Hábito de reto creado: {habit.title} (inscripción {enrollment.id})")
    return habit


def list_habits(db: Session, user: User, enrollment_id: int, timezone: str, now: datetime) -> list[dict]:
    enrollment = get_owned_enrollment(db, user, enrollment_id)
    return habits_with_today_status(db, enrollment, timezone, now)


def update_habit(db: Session, user: User, habit_id: int, title: Optional[str]) -> Habit:
    habit = get_owned_habit(db, user, habit_id)
    if title and title != habit.title:
        _ensure_unique_title(db, habit.enrollment_id, title, exclude_id=habit.id)
        habit.title = title
        db.commit()
        db.refresh(habit)
    return habit


def delete_habit(db: Session, user: User, habit_id: int):
    habit = get_owned_habit(db, user, habit_id)
    db.delete(habit)  # cascade → habit_logs
    db.commit()


# =============================================================================
# ===================== MARCAR / DESMARCAR ====================================
# =============================================================================

def log_habit_completion(
    db: Session, user: User, habit_id: int, timezone: str, now: datetime,
    day: Optional[date] = None
) -> dict:
    """
    Marca un hábito del reto como hecho (hoy, o el día `day` local).

    Retorna:
      {
        "log": HabitLog,
        "day_completed": True,        # todos los hábitos de ese día hechos
        "challenge_completed": False,
        "challenge_failed": False,
        "lives_remaining": 4,
        "current_streak": 3
      }
    """
    habit = get_owned_habit(db, user, habit_id)
    enrollment = habit.enrollment
    timezone = calendar_of(enrollment, timezone)

    refresh_progress(db, enrollment, timezone, now)
    if enrollment.status != EnrollmentStatus.active.value:
        raise InvalidState(
            "No se pueden registrar hábitos de un reto terminado",
            status=enrollment.status
        )

    today = local_day(now, timezone)
    if day is None:
        day = today
    if day > today:
        raise ValidationFailed("No se pueden registrar días futuros", date=day.isoformat())

    snapshot = snapshot_of(enrollment, timezone)
    if day < snapshot.start_day:
        raise InvalidState("La fecha es anterior al inicio del reto", date=day.isoformat())

    log = ledger.record(db, HabitLog, habit.id, day, timezone)

    is_day_completed = day_completed(db, enrollment.id, day, timezone)
    transition = Transition(snapshot)
    if is_day_completed:
        transition = apply_day_completed(
            snapshot, day, enrollment.challenge.duration_days, now
        )

    _commit(db, enrollment, transition, timezone)
    if transition.counted:
        logger.info(
            f"✅ Día {day} completado en inscripción {enrollment.id} "
            f"(racha {enrollment.current_streak}, vidas {enrollment.lives_remaining})"
        )

    return {
        "log": log,
        "day_completed": is_day_completed,
        "challenge_completed": transition.signal == COMPLETED,
        "challenge_failed": transition.signal == FAILED,
        "lives_remaining": enrollment.lives_remaining,
        "current_streak": enrollment.current_streak,
    }


def unlog_habit_completion(db: Session, user: User, habit_id: int, day: date, timezone: str):
    """
    Borra el registro de ese día. El progreso ya contado NO se deshace y el
    día sigue en enrollment_days: volver a marcarlo no suma otra vez.
    """
    habit = get_owned_habit(db, user, habit_id)
    timezone = calendar_of(habit.enrollment, timezone)
    ledger.remove(db, HabitLog, habit.id, day, timezone)
    db.commit()
