"""
=============================================================================
STREAKS.PY — Rachas y Estadísticas de Hábitos Personales
=============================================================================
Funciones PURAS: reciben instantes + zona horaria + "ahora" y devuelven
números. Sin BD, sin efectos secundarios.

Racha personal (¡distinta de la racha de un reto!):
  - Días de calendario SEGUIDOS completados, terminando hoy o ayer.
  - Completado ayer pero aún no hoy → la racha SIGUE VIVA (hoy no ha acabado).
  - Último completado anteayer o antes → racha = 0.

La racha de un reto (progression.py) cuenta días completados aunque
haya huecos; los huecos cuestan vidas, no racha.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional

from timezones import local_day


class StreakInfo(NamedTuple):
    current_streak: int
    longest_streak: int
    last_completed_date: Optional[date]


def completed_days(instants, timezone: str) -> list[date]:
    """Un día local por instante, sin repetidos, en orden ascendente"""
    return sorted({local_day(instant, timezone) for instant in instants})


def compute_streaks(instants, timezone: str, now: datetime) -> StreakInfo:
    """
    Racha actual, mejor racha y último día completado.

    Ejemplo (hoy = D+2):
      completados D, D+1, D+2 → actual 3
      completados D, D+1 con hoy = D+3 → actual 0, mejor 2
    """
    days = completed_days(instants, timezone)
    if not days:
        return StreakInfo(0, 0, None)

    # ── Mejor racha: tramos de días consecutivos ──
    longest = 1
    run = 1
    for previous, current in zip(days, days[1:]):
        if (current - previous).days == 1:
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    last_day = days[-1]
    today = local_day(now, timezone)

    # Más de un día de hueco hasta hoy → cadena rota
    if (today - last_day).days > 1:
        return StreakInfo(0, longest, last_day)

    # ── Racha actual: hacia atrás desde el último día ──
    current_streak = 1
    for i in range(len(days) - 1, 0, -1):
        if (days[i] - days[i - 1]).days == 1:
            current_streak += 1
        else:
            break

    return StreakInfo(current_streak, longest, last_day)


# =============================================================================
# ===================== ESTADÍSTICAS ==========================================
# =============================================================================

def completion_rate(days, today: date, window: int) -> int:
    """% de días completados en los últimos `window` días (hoy incluido)"""
    first = today - timedelta(days=window - 1)
    count = sum(1 for d in days if first <= d <= today)
    return round(count / window * 100)


def weekly_breakdown(days, today: date, weeks: int = 4) -> list[dict]:
    """Últimas `weeks` semanas (de domingo a sábado), la más antigua primero"""
    this_sunday = today - timedelta(days=(today.weekday() + 1) % 7)
    result = []
    for w in range(weeks - 1, -1, -1):
        week_start = this_sunday - timedelta(weeks=w)
        week_end = week_start + timedelta(days=6)
        result.append({
            "week_start": week_start,
            "week_end": week_end,
            "completed": sum(1 for d in days if week_start <= d <= week_end),
            "total": 7,
        })
    return result


def monthly_breakdown(days, today: date, months: int = 6) -> list[dict]:
    """Últimos `months` meses de calendario, el más antiguo primero"""
    result = []
    for m in range(months - 1, -1, -1):
        # Retroceder m meses desde el mes actual
        month_index = today.year * 12 + (today.month - 1) - m
        year, month = divmod(month_index, 12)
        month += 1
        days_in_month = calendar.monthrange(year, month)[1]

        completed = sum(1 for d in days if d.year == year and d.month == month)
        result.append({
            "month": f"{year}-{month:02d}",
            "completed": completed,
            "total": days_in_month,
            "completion_rate": round(completed / days_in_month * 100),
        })
    return result


def build_habit_analytics(instants, timezone: str, now: datetime) -> dict:
    """
    Todas las estadísticas de un hábito personal.

    Retorna:
      {
        "current_streak": 3, "longest_streak": 10, "total_completions": 42,
        "last_completed_date": date(...), "completed_today": True,
        "completion_rate_last_7": 86, "completion_rate_last_30": 70,
        "weekly_breakdown": [...], "monthly_breakdown": [...]
      }
    """
    instants = list(instants)
    days = completed_days(instants, timezone)
    streak = compute_streaks(instants, timezone, now)
    today = local_day(now, timezone)

    return {
        "current_streak": streak.current_streak,
        "longest_streak": streak.longest_streak,
        "total_completions": len(instants),
        "last_completed_date": streak.last_completed_date,
        "completed_today": today in days,
        "completion_rate_last_7": completion_rate(days, today, 7),
        "completion_rate_last_30": completion_rate(days, today, 30),
        "weekly_breakdown": weekly_breakdown(days, today),
        "monthly_breakdown": monthly_breakdown(days, today),
    }
