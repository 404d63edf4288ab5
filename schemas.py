"""
=============================================================================
SCHEMAS.PY — Entrada y Salida de la API (Pydantic)
=============================================================================
Las tablas viven en models.py; aquí solo está la FORMA de lo que entra
y sale por HTTP.

Todo lo que llega al núcleo (challenges.py, progression.py...) ya viene
validado desde aquí: zona horaria IANA real, fechas "YYYY-MM-DD", rangos.
Un cuerpo que no cumple → 422 antes de tocar la BD.

Sufijos:
  ...Create   → cuerpo de un POST
  ...Update   → cuerpo de un PATCH (todo opcional)
  ...Response → lo que devolvemos
"""

from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator
from datetime import date, datetime
from typing import Optional

from timezones import is_valid_timezone


def _check_timezone(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_valid_timezone(value):
        raise ValueError("Zona horaria IANA no válida (ej: 'Asia/Kolkata', 'America/New_York')")
    return value


# =============================================================================
# ===================== AUTH ==================================================
# =============================================================================

class UserRegister(BaseModel):
    """Datos para registrar un usuario nuevo"""
    email: EmailStr
    password: str = Field(min_length=6, max_length=100, description="Mínimo 6 caracteres")
    name: str = Field(min_length=2, max_length=50)
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value):
        return _check_timezone(value)

class UserLogin(BaseModel):
    """Datos para iniciar sesión"""
    email: EmailStr
    password: str = Field(min_length=1)

class TokenResponse(BaseModel):
    """Respuesta con el token JWT"""
    access_token: str
    token_type: str = "bearer"
    user_id: int
    name: str

class UserResponse(BaseModel):
    """Datos del usuario para la API"""
    id: int
    email: str
    name: str
    role: str
    timezone: Optional[str] = None
    effective_timezone: str
    created_at: datetime

class UserUpdate(BaseModel):
    """Campos actualizables del usuario"""
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value):
        return _check_timezone(value)

class PasswordChange(BaseModel):
    """Cambio de contraseña: la actual + la nueva dos veces"""
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=100)
    confirm_password: str = Field(min_length=1)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Las contraseñas no coinciden")
        return self

class AdminUserItem(BaseModel):
    """Un usuario en el listado de admin (sin hash de contraseña)"""
    id: int
    email: str
    name: str
    role: str
    timezone: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}

class AdminUsersResponse(BaseModel):
    users: list[AdminUserItem]


# =============================================================================
# ===================== CHALLENGES ============================================
# =============================================================================

class ChallengeCreate(BaseModel):
    title: str = Field(min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    duration_days: int = Field(ge=1, le=365)

class ChallengeUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    duration_days: Optional[int] = Field(default=None, ge=1, le=365)

class ChallengeResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    duration_days: int
    created_at: datetime
    model_config = {"from_attributes": True}

class ChallengeStats(BaseModel):
    total_participants: int
    active_participants: int
    completed_participants: int
    failed_participants: int
    completion_rate: int

class ChallengeStatsResponse(BaseModel):
    challenge: ChallengeResponse
    stats: ChallengeStats


# =============================================================================
# ===================== ENROLLMENTS ===========================================
# =============================================================================

class JoinChallenge(BaseModel):
    """start_date → día local del usuario (por defecto, hoy)"""
    start_date: Optional[date] = None

class EnrollmentProgress(BaseModel):
    completed_days: int
    current_streak: int
    last_completed_date: Optional[date] = None

class EnrollmentResponse(BaseModel):
    id: int
    challenge_id: int
    start_date: date
    status: str
    progress: EnrollmentProgress
    lives_remaining: int
    missed_days: int
    completed_on: Optional[datetime] = None
    created_at: datetime

class EnrollmentListItem(EnrollmentResponse):
    challenge: ChallengeResponse
    habit_count: int

class JoinResponse(BaseModel):
    message: str
    enrollment: EnrollmentResponse
    challenge: ChallengeResponse


# =============================================================================
# ===================== CHALLENGE HABITS ======================================
# =============================================================================

class HabitCreate(BaseModel):
    title: str = Field(min_length=2, max_length=100)

class HabitUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=2, max_length=100)

class HabitResponse(BaseModel):
    id: int
    title: str
    enrollment_id: int
    created_at: datetime
    model_config = {"from_attributes": True}

class HabitStatus(BaseModel):
    """Hábito con su estado de hoy (en la zona del usuario)"""
    id: int
    title: str
    completed_today: bool
    created_at: datetime

class EnrollmentProgressResponse(BaseModel):
    enrollment: EnrollmentResponse
    challenge: ChallengeResponse
    habits: list[HabitStatus]
    today_completed: bool


# =============================================================================
# ===================== HABIT LOGS ============================================
# =============================================================================

class HabitLogCreate(BaseModel):
    """date → día local "YYYY-MM-DD" (por defecto, hoy)"""
    log_date: Optional[date] = Field(default=None, alias="date")

class HabitLogResponse(BaseModel):
    id: int
    habit_id: int
    date_completed: datetime
    # date_completed → medianoche local del día, expresada en UTC

class HabitLogResult(BaseModel):
    message: str
    log: HabitLogResponse
    day_completed: bool
    challenge_completed: bool
    challenge_failed: bool
    lives_remaining: int


# =============================================================================
# ===================== PERSONAL HABITS =======================================
# =============================================================================

class PersonalHabitCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=300)
    color: Optional[str] = Field(default=None, max_length=20)

class PersonalHabitUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=300)
    color: Optional[str] = Field(default=None, max_length=20)

class PersonalHabitResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    color: Optional[str]
    archived: bool
    created_at: datetime
    model_config = {"from_attributes": True}

class PersonalHabitDetail(PersonalHabitResponse):
    completed_today: bool

class WeekBreakdown(BaseModel):
    week_start: date
    week_end: date
    completed: int
    total: int

class MonthBreakdown(BaseModel):
    month: str
    completed: int
    total: int
    completion_rate: int

class HabitAnalytics(BaseModel):
    current_streak: int
    longest_streak: int
    total_completions: int
    last_completed_date: Optional[date]
    completed_today: bool
    completion_rate_last_7: int
    completion_rate_last_30: int
    weekly_breakdown: list[WeekBreakdown]
    monthly_breakdown: list[MonthBreakdown]

class HabitAnalyticsResponse(BaseModel):
    habit: PersonalHabitResponse
    analytics: HabitAnalytics

class HabitSummaryItem(BaseModel):
    habit: PersonalHabitResponse
    current_streak: int
    longest_streak: int
    total_completions: int
    completed_today: bool
    last_completed_date: Optional[date]

class HabitsSummaryResponse(BaseModel):
    total_habits: int
    completed_today_count: int
    habits: list[HabitSummaryItem]


class MessageResponse(BaseModel):
    message: str
