"""
=============================================================================
MODELS.PY — Tablas de RachaViva (SQLAlchemy)
=============================================================================
Quién cuelga de quién:
  USER
  ├── enrollments[] (inscripciones a retos) ──→ habits[] ──→ habit_logs[]
  │                                          └─→ enrollment_days[]
  └── personal_habits[] ──→ personal_habit_logs[]

  CHALLENGE ──→ enrollments[]

FECHAS:
  Todos los DateTime se guardan en UTC sin tzinfo (como datetime.utcnow()).
  Los "días" (start_date, date_completed, last_completed_date) se guardan
  como el instante UTC de la medianoche LOCAL del usuario ese día.
  Ver timezones.py.
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, Text, Date, DateTime, ForeignKey,
    UniqueConstraint, Index, text
)
from sqlalchemy.orm import relationship
from database import Base
import enum


# =============================================================================
# ===================== ENUMS ===============================================
# =============================================================================

class UserRole(str, enum.Enum):
    """Rol del usuario"""
    user = "user"
    admin = "admin"


class EnrollmentStatus(str, enum.Enum):
    """
    Estado de una inscripción a un reto.
    active → completed | failed. Los dos últimos son TERMINALES.
    """
    active = "active"
    completed = "completed"
    failed = "failed"


# =============================================================================
# ===================== TABLA 1: USERS ========================================
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(String(20), default=UserRole.user.value, nullable=False)

    timezone = Column(String(64), nullable=True)
    # timezone → identificador IANA validado. NULL = sin preferencia
    # (se usa la zona por defecto de la configuración)

    created_at = Column(DateTime, default=datetime.utcnow)

    enrollments = relationship("Enrollment", back_populates="user", cascade="all, delete-orphan")
    personal_habits = relationship("PersonalHabit", back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 2: CHALLENGES ===================================
# =============================================================================
# Catálogo de retos. Los crea un admin; los usuarios se inscriben.

class Challenge(Base):
    __tablename__ = "challenges"

    id = Column(Integer, primary_key=True, autoincrement=True)

    title = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    duration_days = Column(Integer, nullable=False)
    # duration_days → días completados necesarios para ganar el reto

    created_at = Column(DateTime, default=datetime.utcnow)

    enrollments = relationship("Enrollment", back_populates="challenge", cascade="all, delete-orphan")
    # Borrar un reto se lleva sus inscripciones TERMINADAS
    # (main.py impide borrarlo mientras haya alguna activa)


# =============================================================================
# ===================== TABLA 3: ENROLLMENTS ==================================
# =============================================================================
# Un usuario × un reto. Se puede volver a inscribir después de ganar o
# perder (nueva fila), pero solo puede haber UNA activa a la vez.

class Enrollment(Base):
    __tablename__ = "enrollments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    challenge_id = Column(Integer, ForeignKey("challenges.id"), nullable=False, index=True)

    status = Column(String(20), default=EnrollmentStatus.active.value, nullable=False)
    start_date = Column(DateTime, nullable=False)
    # start_date → medianoche local (en UTC) del día en que empezó
    timezone = Column(String(64), nullable=True)
    # timezone → zona del usuario al inscribirse. Todos los días del reto
    # se calculan en ella aunque luego cambie la del perfil.

    # ── Progreso ──
    completed_days = Column(Integer, default=0, nullable=False)
    current_streak = Column(Integer, default=0, nullable=False)
    # current_streak → días completados que cuentan para ganar.
    # NO se rompe por fallar un día: los fallos cuestan vidas.
    last_completed_date = Column(DateTime, nullable=True)

    lives_remaining = Column(Integer, default=5, nullable=False)
    missed_days = Column(Integer, default=0, nullable=False)

    completed_on = Column(DateTime, nullable=True)
    # completed_on → cuándo salió de "active" (ganado o perdido)

    version = Column(Integer, nullable=False)
    # version → bloqueo optimista: si dos peticiones escriben desde la misma
    # foto del progreso, la segunda falla en vez de pisar a la primera

    created_at = Column(DateTime, default=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    # ── Una sola inscripción ACTIVA por (usuario, reto) ──
    __table_args__ = (
        Index(
            "uq_active_enrollment", "user_id", "challenge_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    user = relationship("User", back_populates="enrollments")
    challenge = relationship("Challenge", back_populates="enrollments")
    habits = relationship(
        "Habit", back_populates="enrollment", cascade="all, delete-orphan",
        order_by="Habit.created_at"
    )
    counted_days = relationship(
        "EnrollmentDay", back_populates="enrollment", cascade="all, delete-orphan"
    )


# =============================================================================
# ===================== TABLA 3b: ENROLLMENT_DAYS =============================
# =============================================================================
# Días que YA sumaron progreso en una inscripción. Borrar un log no borra
# el día de aquí, así que volver a completarlo no lo cuenta otra vez.

class EnrollmentDay(Base):
    __tablename__ = "enrollment_days"

    id = Column(Integer, primary_key=True, autoincrement=True)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id"), nullable=False, index=True)

    day = Column(Date, nullable=False)
    # day → fecha local en la zona de la inscripción

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('enrollment_id', 'day', name='uq_enrollment_day'),
    )

    enrollment = relationship("Enrollment", back_populates="counted_days")


# =============================================================================
# ===================== TABLA 4: HABITS =======================================
# =============================================================================
# Hábitos de un reto. Pertenecen a UNA inscripción.

class Habit(Base):
    __tablename__ = "habits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id"), nullable=False, index=True)

    title = Column(String(100), nullable=False)
    # title → único (sin distinguir mayúsculas) dentro de la inscripción

    created_at = Column(DateTime, default=datetime.utcnow)

    enrollment = relationship("Enrollment", back_populates="habits")
    logs = relationship("HabitLog", back_populates="habit", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 5: HABIT_LOGS ===================================
# =============================================================================
# Libro de completados. Un registro por hábito por día. Inmutable
# (solo se puede borrar con "unlog").

class HabitLog(Base):
    __tablename__ = "habit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    habit_id = Column(Integer, ForeignKey("habits.id"), nullable=False)

    date_completed = Column(DateTime, nullable=False)
    # date_completed → medianoche local (en UTC) del día completado

    created_at = Column(DateTime, default=datetime.utcnow)

    # ── Restricción única: un log por hábito por día ──
    __table_args__ = (
        UniqueConstraint('habit_id', 'date_completed', name='uq_habit_log_day'),
    )

    habit = relationship("Habit", back_populates="logs")


# =============================================================================
# ===================== TABLA 6: PERSONAL_HABITS ==============================
# =============================================================================
# Hábitos personales: sin reto, sin vidas. Solo rachas y estadísticas.

class PersonalHabit(Base):
    __tablename__ = "personal_habits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(100), nullable=False)
    description = Column(String(300), nullable=True)
    color = Column(String(20), nullable=True)
    # color → etiqueta opcional para la interfaz

    archived = Column(Boolean, default=False, nullable=False)
    # archived → oculto pero no borrado, conserva historial

    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="personal_habits")
    logs = relationship("PersonalHabitLog", back_populates="habit", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 7: PERSONAL_HABIT_LOGS ==========================
# =============================================================================

class PersonalHabitLog(Base):
    __tablename__ = "personal_habit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    habit_id = Column(Integer, ForeignKey("personal_habits.id"), nullable=False)

    date_completed = Column(DateTime, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('habit_id', 'date_completed', name='uq_personal_habit_log_day'),
    )

    habit = relationship("PersonalHabit", back_populates="logs")
