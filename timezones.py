"""
=============================================================================
TIMEZONES.PY — Días del Calendario en la Zona Horaria del Usuario
=============================================================================
TODA la lógica de "hoy", "ayer" y "hace N días" pasa por aquí.

¿Por qué? Porque un hábito marcado a las 00:25 en India pertenece al día
nuevo de India, aunque en UTC todavía sea el día anterior. Si comparamos
fechas en UTC, las rachas se rompen (o se regalan) a medianoche.

Conceptos:
  - "instante" → un datetime en UTC (si llega sin tzinfo, se asume UTC)
  - "día"      → un date (sin hora), siempre relativo a una zona horaria

En la BD guardamos cada día como el instante UTC de su medianoche local.

Estas funciones asumen zonas horarias YA validadas (is_valid_timezone
se usa en los esquemas y al arrancar, no aquí dentro).
"""

from datetime import date, datetime, time, timedelta

import pytz

DAY = timedelta(days=1)
ONE_MS = timedelta(milliseconds=1)


def is_valid_timezone(name) -> bool:
    """True solo para identificadores IANA reales ("Asia/Kolkata", "America/New_York")"""
    return isinstance(name, str) and name in pytz.all_timezones_set


def as_utc(instant: datetime) -> datetime:
    """Devuelve el instante con tzinfo UTC (los naive se consideran UTC)"""
    if instant.tzinfo is None:
        return pytz.utc.localize(instant)
    return instant.astimezone(pytz.utc)


def to_naive_utc(instant: datetime) -> datetime:
    """Formato de almacenamiento: UTC sin tzinfo (como datetime.utcnow())"""
    return as_utc(instant).replace(tzinfo=None)


def local_day(instant: datetime, timezone: str) -> date:
    """El día del calendario local en el que cae un instante"""
    return as_utc(instant).astimezone(pytz.timezone(timezone)).date()


def day_start(timezone: str, day: date) -> datetime:
    """
    Instante UTC de las 00:00:00.000 locales de `day`.

    Se construye la medianoche "naive" de esa fecha y se localiza en la zona:
    así el desfase es el que rige a esa hora (correcto con horario de verano
    y con desfases no enteros como +05:30). Si la medianoche no existe
    (cambio de hora justo a las 00:00) se usa el primer instante del día.
    """
    tz = pytz.timezone(timezone)
    local_midnight = tz.localize(datetime.combine(day, time.min), is_dst=False)
    return local_midnight.astimezone(pytz.utc)


def start_of_day(timezone: str, instant: datetime) -> datetime:
    """
    Instante UTC de la medianoche local del día que contiene `instant`.

    Ejemplo (Asia/Kolkata, UTC+5:30):
      instant = 2026-02-25T18:55:00Z  (00:25 del 26 en India)
      devuelve  2026-02-25T18:30:00Z  (medianoche del 26 en India, en UTC)
    """
    return day_start(timezone, local_day(instant, timezone))


def end_of_day(timezone: str, instant: datetime) -> datetime:
    """Instante UTC de las 23:59:59.999 locales del mismo día"""
    return start_of_day(timezone, instant) + DAY - ONE_MS


def today(timezone: str, now: datetime) -> datetime:
    """Atajo: inicio de hoy en la zona del usuario"""
    return start_of_day(timezone, now)


def tomorrow(timezone: str, now: datetime) -> datetime:
    """Atajo: inicio de mañana en la zona del usuario"""
    return day_start(timezone, local_day(now, timezone) + DAY)


def day_bounds(timezone: str, day: date) -> tuple[datetime, datetime]:
    """[inicio, inicio del día siguiente) en UTC naive, listo para filtrar en la BD"""
    return (
        to_naive_utc(day_start(timezone, day)),
        to_naive_utc(day_start(timezone, day + DAY)),
    )


def days_between(earlier: date, later: date) -> int:
    """Días completos de calendario entre dos días (negativo si later < earlier)"""
    return (later - earlier).days
