"""
=============================================================================
PROGRESSION.PY — Máquina de Estados de un Reto
=============================================================================
El corazón del sistema. Decide, para una inscripción:
  - cuántos días lleva completados y su racha
  - cuántos días ha fallado y cuántas vidas le quedan
  - si ha GANADO (completed) o PERDIDO (failed)

Estados:
  active ──→ completed
         └─→ failed
  (completed y failed son terminales: de ahí no se sale)

Dos entradas:
  (a) apply_day_completed → el usuario acaba de completar TODOS los hábitos
      de un día.
  (b) recompute → se lee el progreso. Detecta los días que pasaron sin que
      nadie abriera la app y aplica las vidas perdidas. Nadie entra todos
      los días, así que esto se hace "perezosamente" al leer, sin cron.

Todo es PURO: recibe una foto inmutable (ProgressSnapshot) y devuelve una
nueva (Transition). Guardar en la BD es cosa de challenges.py.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Optional

from config import LIVES_ALLOWANCE
from timezones import days_between, local_day

ACTIVE = "active"
COMPLETED = "completed"
FAILED = "failed"


@dataclass(frozen=True)
class ProgressSnapshot:
    """Foto del progreso de una inscripción, con días ya en calendario local"""
    status: str
    start_day: date
    completed_days: int = 0
    current_streak: int = 0
    last_completed_day: Optional[date] = None
    lives_remaining: int = LIVES_ALLOWANCE
    missed_days: int = 0
    completed_on: Optional[datetime] = None
    counted_days: frozenset = frozenset()
    # counted_days → días que ya sumaron progreso (aunque luego se borrara el log)

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE


@dataclass(frozen=True)
class Transition:
    """
    Resultado de aplicar un evento.

    changed → hay que guardar `snapshot`
    signal  → "completed" / "failed" si la inscripción acaba de terminar
    counted → (solo en a) el día se ha contado como completado
    """
    snapshot: ProgressSnapshot
    changed: bool = False
    signal: Optional[str] = None
    counted: bool = False


def lives_for(missed_days: int, allowance: int = LIVES_ALLOWANCE) -> int:
    """Vidas = max(0, vidas iniciales - días fallados)"""
    return max(0, allowance - missed_days)


# =============================================================================
# ===================== (a) DÍA COMPLETADO ====================================
# =============================================================================

def apply_day_completed(
    snapshot: ProgressSnapshot,
    day: date,
    duration_days: int,
    now: datetime,
    allowance: int = LIVES_ALLOWANCE,
) -> Transition:
    """
    Cuenta `day` como completado y decide si se gana o se pierde.

    Lógica:
      1. Si `day` ya se contó alguna vez → nada. Borrar un log y volver a
         marcarlo no suma otra vez.
      2. days_elapsed = días entre el inicio y `day`.
      3. missed = max(0, days_elapsed - completados + 1)
         (el +1 es porque `day` es uno de los días transcurridos).
      4. La racha SIEMPRE sube: los fallos cuestan vidas, no racha.
      5. Sin vidas → failed. Si no, racha >= duración → completed.
         Si pasan las dos cosas el mismo día, gana el fallo.
    """
    if not snapshot.is_active:
        return Transition(snapshot)

    if day in snapshot.counted_days or snapshot.last_completed_day == day:
        return Transition(snapshot)

    # Con un día atrasado, days_elapsed llega solo hasta `day`: los fallos
    # posteriores al día atrasado no se ven aquí y la respuesta puede salir con
    # más vidas de las reales. El siguiente recompute() los vuelve a contar.
    days_elapsed = days_between(snapshot.start_day, day)
    completed_days = snapshot.completed_days + 1
    missed_days = max(0, days_elapsed - completed_days + 1)
    lives_remaining = lives_for(missed_days, allowance)
    current_streak = snapshot.current_streak + 1

    if snapshot.last_completed_day is None:
        last_completed_day = day
    else:
        # Un día atrasado no puede mover hacia atrás el último completado
        last_completed_day = max(snapshot.last_completed_day, day)

    status = ACTIVE
    if lives_remaining <= 0:
        status = FAILED
    elif current_streak >= duration_days:
        status = COMPLETED

    new_snapshot = replace(
        snapshot,
        status=status,
        completed_days=completed_days,
        current_streak=current_streak,
        last_completed_day=last_completed_day,
        lives_remaining=lives_remaining,
        missed_days=missed_days,
        completed_on=now if status != ACTIVE else snapshot.completed_on,
        counted_days=snapshot.counted_days | {day},
    )
    return Transition(
        new_snapshot,
        changed=True,
        signal=status if status != ACTIVE else None,
        counted=True,
    )


# =============================================================================
# ===================== (b) RECÁLCULO AL LEER =================================
# =============================================================================

def recompute(
    snapshot: ProgressSnapshot,
    now: datetime,
    timezone: str,
    allowance: int = LIVES_ALLOWANCE,
) -> Transition:
    """
    Aplica los días fallados que pasaron sin actividad.

    Hoy NO cuenta como transcurrido (no ha terminado). Si hoy ya se completó,
    tampoco se cuenta como completado "del pasado".

    Es un punto fijo: llamarlo dos veces seguidas da el mismo resultado,
    y una vez failed ya no cambia nada.
    """
    if not snapshot.is_active:
        return Transition(snapshot)

    today = local_day(now, timezone)
    days_elapsed = days_between(snapshot.start_day, today)

    completed_for_past = snapshot.completed_days
    if snapshot.last_completed_day == today:
        completed_for_past -= 1

    missed_days = max(0, days_elapsed - completed_for_past)
    lives_remaining = lives_for(missed_days, allowance)
    failed = lives_remaining <= 0

    if (
        missed_days == snapshot.missed_days
        and lives_remaining == snapshot.lives_remaining
        and not failed
    ):
        return Transition(snapshot)

    new_snapshot = replace(
        snapshot,
        missed_days=missed_days,
        lives_remaining=lives_remaining,
        status=FAILED if failed else ACTIVE,
        completed_on=now if failed else snapshot.completed_on,
    )
    return Transition(new_snapshot, changed=True, signal=FAILED if failed else None)
