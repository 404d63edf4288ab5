"""
=============================================================================
MAIN.PY — La API de RachaViva
=============================================================================
Este archivo define TODOS los endpoints de la API REST.
La lógica de verdad vive en los servicios; aquí solo se valida, se llama
y se proyecta la respuesta.

Organización por secciones:
  1. AUTH             → Registro, login, perfil, contraseña, usuarios (admin)
  2. CHALLENGES       → Catálogo de retos (escritura solo admin)
  3. ENROLLMENTS      → Inscribirse, abandonar, ver progreso
  4. CHALLENGE HABITS → Hábitos de una inscripción, marcar / desmarcar
  5. PERSONAL HABITS  → Hábitos sin reto, rachas y estadísticas

Zona horaria: cada petición trabaja con la del usuario o, si no tiene,
con la zona por defecto (validada al arrancar y guardada en app.state).
Las inscripciones son la excepción: cuentan sus días en la zona que había
al inscribirse (Enrollment.timezone).
"Ahora" sale de la dependencia get_now para que los tests fijen el reloj.
"""

import logging
import traceback
from datetime import datetime, date
from contextlib import asynccontextmanager
from typing import Optional

import pytz
from fastapi import FastAPI, Depends, HTTPException, status, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

import challenges as challenge_service
import personal_habits as personal_service
from config import (
    APP_NAME, APP_VERSION, DEFAULT_TIMEZONE, LOG_LEVEL, CORS_ORIGINS,
    ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_NAME
)
from database import get_db, init_db, SessionLocal
from errors import DomainError, Conflict, InvalidState, NotFound
from models import Challenge, Enrollment, EnrollmentStatus, Habit, User, UserRole
from schemas import (
    UserRegister, UserLogin, TokenResponse, UserResponse, UserUpdate,
    PasswordChange, AdminUsersResponse,
    ChallengeCreate, ChallengeUpdate, ChallengeResponse, ChallengeStats, ChallengeStatsResponse,
    JoinChallenge, EnrollmentProgress, EnrollmentResponse, EnrollmentListItem, JoinResponse,
    HabitCreate, HabitUpdate, HabitResponse, HabitStatus, EnrollmentProgressResponse,
    HabitLogCreate, HabitLogResponse, HabitLogResult,
    PersonalHabitCreate, PersonalHabitUpdate, PersonalHabitResponse, PersonalHabitDetail,
    HabitAnalyticsResponse, HabitsSummaryResponse, MessageResponse
)
from auth import (
    hash_password, verify_password, authenticate, create_access_token,
    get_current_user, require_admin
)
from timezones import is_valid_timezone, local_day

# ─────────────────────────────────────────────────────────────────────────────
# LOGGING
# ─────────────────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
)
logger = logging.getLogger("rachaviva.api")


# ─────────────────────────────────────────────────────────────────────────────
# LIFESPAN (Arranque y apagado)
# ─────────────────────────────────────────────────────────────────────────────

def seed_admin(db: Session):
    """Crea el admin inicial si ADMIN_EMAIL y ADMIN_PASSWORD están definidos"""
    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        return
    if db.query(User).filter(User.email == ADMIN_EMAIL).first():
        return
    db.add(User(
        email=ADMIN_EMAIL,
        password_hash=hash_password(ADMIN_PASSWORD),
        name=ADMIN_NAME,
        role=UserRole.admin.value
    ))
    db.commit()
    logger.info(f"👑 Admin inicial creado: {ADMIN_EMAIL}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Arranque:
      1. Validar la zona horaria por defecto (si es inválida, NO arrancamos)
      2. Inicializar BD (crear tablas)
      3. Crear el admin inicial
    """
    logger.info(f"🚀 Arrancando {APP_NAME} {APP_VERSION}...")

    if not is_valid_timezone(DEFAULT_TIMEZONE):
        raise RuntimeError(f"DEFAULT_TIMEZONE no es una zona IANA válida: {DEFAULT_TIMEZONE!r}")
    app.state.default_timezone = DEFAULT_TIMEZONE

    init_db()
    logger.info("✅ Base de datos inicializada")

    db = SessionLocal()
    try:
        seed_admin(db)
    finally:
        db.close()

    logger.info(f"🎉 {APP_NAME} operativo (zona por defecto: {DEFAULT_TIMEZONE})")

    yield  # ← La aplicación está corriendo

    logger.info("👋 Apagado completo")


# ─────────────────────────────────────────────────────────────────────────────
# APLICACIÓN FASTAPI
# ─────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=f"{APP_NAME} API",
    description="Hábitos personales y retos con rachas, vidas y victoria",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────────────────────
# ERROR HANDLERS
# ─────────────────────────────────────────────────────────────────────────────

@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Errores esperados de los servicios → JSON con detail + contexto"""
    if isinstance(exc, Conflict):
        logger.warning(f"⚠️ Conflicto en {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, **exc.context}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Captura errores no manejados: traza completa al log, mensaje genérico al cliente"""
    logger.error(f"❌ Error no manejado en {request.url}: {exc}\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Error interno del servidor"}
    )


# ─────────────────────────────────────────────────────────────────────────────
# DEPENDENCIAS: RELOJ Y ZONA HORARIA
# ─────────────────────────────────────────────────────────────────────────────

def get_now() -> datetime:
    """Instante actual en UTC. Los tests la sobrescriben para fijar el reloj."""
    return datetime.now(pytz.utc)


def effective_timezone(request: Request, user: User) -> str:
    if user.timezone:
        return user.timezone
    return getattr(request.app.state, "default_timezone", DEFAULT_TIMEZONE)


def get_timezone(request: Request, user: User = Depends(get_current_user)) -> str:
    """Zona del usuario, o la zona por defecto si no guardó ninguna"""
    return effective_timezone(request, user)


# ─────────────────────────────────────────────────────────────────────────────
# PROYECCIONES (fila → respuesta)
# ─────────────────────────────────────────────────────────────────────────────

def enrollment_response(enrollment: Enrollment, timezone: str) -> EnrollmentResponse:
    """Días guardados como medianoche UTC → fechas locales de la inscripción"""
    timezone = challenge_service.calendar_of(enrollment, timezone)
    last = enrollment.last_completed_date
    return EnrollmentResponse(
        id=enrollment.id,
        challenge_id=enrollment.challenge_id,
        start_date=local_day(enrollment.start_date, timezone),
        status=enrollment.status,
        progress=EnrollmentProgress(
            completed_days=enrollment.completed_days,
            current_streak=enrollment.current_streak,
            last_completed_date=local_day(last, timezone) if last else None,
        ),
        lives_remaining=enrollment.lives_remaining,
        missed_days=enrollment.missed_days,
        completed_on=enrollment.completed_on,
        created_at=enrollment.created_at,
    )


def habit_statuses(items: list[dict]) -> list[HabitStatus]:
    return [
        HabitStatus(
            id=item["habit"].id,
            title=item["habit"].title,
            completed_today=item["completed_today"],
            created_at=item["habit"].created_at,
        )
        for item in items
    ]


def log_response(log) -> HabitLogResponse:
    return HabitLogResponse(id=log.id, habit_id=log.habit_id, date_completed=log.date_completed)


def user_response(request: Request, user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        timezone=user.timezone,
        effective_timezone=effective_timezone(request, user),
        created_at=user.created_at,
    )


# =============================================================================
# ===================== HEALTH CHECK ==========================================
# =============================================================================

@app.get("/", tags=["Health"])
def health_check(now: datetime = Depends(get_now)):
    """Verifica que la API está viva"""
    return {
        "status": "ok",
        "app": APP_NAME,
        "version": APP_VERSION,
        "timestamp": now.isoformat()
    }


# =============================================================================
# ===================== SECCIÓN 1: AUTH =======================================
# =============================================================================

@app.post("/auth/register", response_model=TokenResponse, tags=["Auth"])
def register(data: UserRegister, db: Session = Depends(get_db)):
    """
    Registra un usuario nuevo.

    Flujo:
      1. Verificar que el email no existe
      2. Hashear la contraseña
      3. Crear el usuario (zona horaria solo si la envió)
      4. Generar y devolver token JWT
    """
    existing = db.query(User).filter(User.email == data.email).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Ya existe una cuenta con este email"
        )

    user = User(
        email=data.email,
        password_hash=hash_password(data.password),
        name=data.name,
        timezone=data.timezone
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    token = create_access_token(user)

    logger.info(f"👤 Nuevo usuario registrado: {user.name} ({user.email})")

    return TokenResponse(
        access_token=token,
        user_id=user.id,
        name=user.name
    )


@app.post("/auth/login", response_model=TokenResponse, tags=["Auth"])
def login(data: UserLogin, db: Session = Depends(get_db)):
    """Inicia sesión con email y contraseña"""
    user = authenticate(db, data.email, data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Email o contraseña incorrectos"
        )

    token = create_access_token(user)
    return TokenResponse(
        access_token=token,
        user_id=user.id,
        name=user.name
    )


@app.get("/auth/me", response_model=UserResponse, tags=["Auth"])
def get_me(request: Request, user: User = Depends(get_current_user)):
    """Devuelve los datos del usuario autenticado"""
    return user_response(request, user)


@app.patch("/auth/me", response_model=UserResponse, tags=["Auth"])
def update_me(
    request: Request, data: UserUpdate,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Actualiza nombre y/o zona horaria"""
    if data.name is not None:
        user.name = data.name
    if data.timezone is not None:
        user.timezone = data.timezone

    db.commit()
    db.refresh(user)
    return user_response(request, user)


@app.put("/auth/change-password", response_model=MessageResponse, tags=["Auth"])
def change_password(
    data: PasswordChange,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Cambia la contraseña. Hay que enviar la actual."""
    if not verify_password(data.current_password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="La contraseña actual no es correcta"
        )

    user.password_hash = hash_password(data.new_password)
    db.commit()
    logger.info(f"🔑 Contraseña cambiada: {user.email}")
    return {"message": "Contraseña actualizada"}


@app.get("/auth/admin/users", response_model=AdminUsersResponse, tags=["Auth"])
def admin_list_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Todos los usuarios, el más nuevo primero (solo admin)"""
    users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
    return {"users": users}


# =============================================================================
# ===================== SECCIÓN 2: CHALLENGES =================================
# =============================================================================

CHALLENGE_SORTS = {
    "newest": (Challenge.created_at.desc(), Challenge.id.desc()),
    "durationAsc": (Challenge.duration_days.asc(), Challenge.id.asc()),
    "durationDesc": (Challenge.duration_days.desc(), Challenge.id.asc()),
    "titleAsc": (Challenge.title.asc(),),
    "titleDesc": (Challenge.title.desc(),),
}


def _get_challenge(db: Session, challenge_id: int) -> Challenge:
    challenge = db.query(Challenge).filter(Challenge.id == challenge_id).first()
    if not challenge:
        raise NotFound("Reto no encontrado")
    return challenge


def _ensure_unique_challenge_title(db: Session, title: str, exclude_id: Optional[int] = None):
    query = db.query(Challenge).filter(func.lower(Challenge.title) == title.lower())
    if exclude_id is not None:
        query = query.filter(Challenge.id != exclude_id)
    if query.first():
        raise Conflict("Ya existe un reto con este título")


@app.get("/challenges", response_model=list[ChallengeResponse], tags=["Challenges"])
def list_challenges(
    search: Optional[str] = None,
    sort_by: str = Query(default="newest", pattern="^(newest|durationAsc|durationDesc|titleAsc|titleDesc)$"),
    db: Session = Depends(get_db)
):
    """Catálogo público de retos, con búsqueda y orden"""
    query = db.query(Challenge)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Challenge.title.ilike(pattern),
            Challenge.description.ilike(pattern)
        ))
    return query.order_by(*CHALLENGE_SORTS[sort_by]).all()


@app.get("/challenges/{challenge_id}", response_model=ChallengeResponse, tags=["Challenges"])
def get_challenge(challenge_id: int, db: Session = Depends(get_db)):
    return _get_challenge(db, challenge_id)


@app.post("/challenges", response_model=ChallengeResponse, status_code=201, tags=["Challenges"])
def create_challenge(data: ChallengeCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Crea un reto (solo admin)"""
    _ensure_unique_challenge_title(db, data.title)

    challenge = Challenge(
        title=data.title,
        description=data.description,
        duration_days=data.duration_days
    )
    db.add(challenge)
    db.commit()
    db.refresh(challenge)

    logger.info(f"🏁 Reto creado: {challenge.title} ({challenge.duration_days} días)")
    return challenge


@app.patch("/challenges/{challenge_id}", response_model=ChallengeResponse, tags=["Challenges"])
def update_challenge(
    challenge_id: int, data: ChallengeUpdate,
    admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    """Actualiza un reto (solo admin)"""
    challenge = _get_challenge(db, challenge_id)

    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("title") and update_data["title"] != challenge.title:
        _ensure_unique_challenge_title(db, update_data["title"], exclude_id=challenge.id)

    for key, value in update_data.items():
        # title y duration_days no admiten null; description sí
        if value is None and key != "description":
            continue
        setattr(challenge, key, value)

    db.commit()
    db.refresh(challenge)
    return challenge


@app.delete("/challenges/{challenge_id}", response_model=MessageResponse, tags=["Challenges"])
def delete_challenge(challenge_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Elimina un reto. Bloqueado mientras alguien lo esté haciendo."""
    challenge = _get_challenge(db, challenge_id)

    active = db.query(Enrollment).filter(
        Enrollment.challenge_id == challenge.id,
        Enrollment.status == EnrollmentStatus.active.value
    ).count()
    if active > 0:
        raise InvalidState(
            "No se puede borrar un reto con participantes activos",
            active_participants=active
        )

    title = challenge.title
    db.delete(challenge)
    db.commit()
    logger.info(f"🗑️ Reto eliminado: {title}")
    return {"message": f"Reto '{title}' eliminado"}


@app.get("/challenges/{challenge_id}/stats", response_model=ChallengeStatsResponse, tags=["Challenges"])
def challenge_stats(challenge_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Participantes por estado y porcentaje de victorias (solo admin)"""
    challenge = _get_challenge(db, challenge_id)

    counts = dict(
        db.query(Enrollment.status, func.count(Enrollment.id))
        .filter(Enrollment.challenge_id == challenge.id)
        .group_by(Enrollment.status)
        .all()
    )
    total = sum(counts.values())
    completed = counts.get(EnrollmentStatus.completed.value, 0)

    return ChallengeStatsResponse(
        challenge=ChallengeResponse.model_validate(challenge),
        stats=ChallengeStats(
            total_participants=total,
            active_participants=counts.get(EnrollmentStatus.active.value, 0),
            completed_participants=completed,
            failed_participants=counts.get(EnrollmentStatus.failed.value, 0),
            completion_rate=round(completed / total * 100) if total else 0,
        )
    )


# =============================================================================
# ===================== SECCIÓN 3: ENROLLMENTS ================================
# =============================================================================

@app.post("/challenges/{challenge_id}/join", response_model=JoinResponse, status_code=201, tags=["Enrollments"])
def join_challenge(
    challenge_id: int,
    data: Optional[JoinChallenge] = None,
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """
    Inscribe al usuario en el reto (5 vidas, progreso a cero).
    Si ya está inscrito y sigue activo → 409 con el estado de esa inscripción.
    """
    start_day = data.start_date if data else None
    enrollment = challenge_service.join_challenge(db, user, challenge_id, timezone, now, start_day)
    return JoinResponse(
        message="¡Inscrito en el reto!",
        enrollment=enrollment_response(enrollment, timezone),
        challenge=ChallengeResponse.model_validate(enrollment.challenge),
    )


@app.delete("/challenges/{challenge_id}/leave", response_model=MessageResponse, tags=["Enrollments"])
def leave_challenge(challenge_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Abandona el reto. Borra hábitos y registros de esa inscripción."""
    challenge_service.leave_challenge(db, user, challenge_id)
    return {"message": "Has abandonado el reto"}


@app.get("/my-challenges", response_model=list[EnrollmentListItem], tags=["Enrollments"])
def my_challenges(
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Todas mis inscripciones, con el progreso ya recalculado"""
    enrollments = challenge_service.list_enrollments(db, user, timezone, now)
    if not enrollments:
        return []

    habit_counts = dict(
        db.query(Habit.enrollment_id, func.count(Habit.id))
        .filter(Habit.enrollment_id.in_([e.id for e in enrollments]))
        .group_by(Habit.enrollment_id)
        .all()
    )

    return [
        EnrollmentListItem(
            **enrollment_response(e, timezone).model_dump(),
            challenge=ChallengeResponse.model_validate(e.challenge),
            habit_count=habit_counts.get(e.id, 0),
        )
        for e in enrollments
    ]


@app.get("/my-challenges/{enrollment_id}", response_model=EnrollmentProgressResponse, tags=["Enrollments"])
def enrollment_progress(
    enrollment_id: int,
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Progreso de una inscripción (recalculado) con el estado de hoy de cada hábito"""
    result = challenge_service.get_enrollment_progress(db, user, enrollment_id, timezone, now)
    enrollment = result["enrollment"]
    return EnrollmentProgressResponse(
        enrollment=enrollment_response(enrollment, timezone),
        challenge=ChallengeResponse.model_validate(enrollment.challenge),
        habits=habit_statuses(result["habits"]),
        today_completed=result["today_completed"],
    )


# =============================================================================
# ===================== SECCIÓN 4: CHALLENGE HABITS ===========================
# =============================================================================

@app.post(
    "/my-challenges/{enrollment_id}/habits",
    response_model=HabitResponse, status_code=201, tags=["Challenge Habits"]
)
def create_challenge_habit(
    enrollment_id: int, data: HabitCreate,
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Añade un hábito al reto (solo antes del primer día completado)"""
    return challenge_service.create_habit(db, user, enrollment_id, data.title, timezone, now)


@app.get("/my-challenges/{enrollment_id}/habits", response_model=list[HabitStatus], tags=["Challenge Habits"])
def list_challenge_habits(
    enrollment_id: int,
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    return habit_statuses(challenge_service.list_habits(db, user, enrollment_id, timezone, now))


@app.patch("/habits/{habit_id}", response_model=HabitResponse, tags=["Challenge Habits"])
def update_challenge_habit(
    habit_id: int, data: HabitUpdate,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Renombra un hábito del reto"""
    return challenge_service.update_habit(db, user, habit_id, data.title)


@app.delete("/habits/{habit_id}", response_model=MessageResponse, tags=["Challenge Habits"])
def delete_challenge_habit(habit_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Elimina un hábito del reto y su historial"""
    challenge_service.delete_habit(db, user, habit_id)
    return {"message": "Hábito eliminado"}


@app.post("/habits/{habit_id}/log", response_model=HabitLogResult, status_code=201, tags=["Challenge Habits"])
def log_challenge_habit(
    habit_id: int,
    data: Optional[HabitLogCreate] = None,
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """
    Marca un hábito del reto como hecho (hoy, o el día "date" local).

    Si con este hábito se completan TODOS los del día:
      - suma un día al reto
      - puede ganarlo (racha = duración) o perderlo (sin vidas)
    """
    day = data.log_date if data else None
    result = challenge_service.log_habit_completion(db, user, habit_id, timezone, now, day)

    if result["challenge_failed"]:
        message = "Reto perdido - sin vidas"
    elif result["challenge_completed"]:
        message = f"¡Reto completado - racha de {result['current_streak']} días!"
    elif result["day_completed"]:
        message = "¡Día completado!"
    else:
        message = "Hábito registrado"

    return HabitLogResult(
        message=message,
        log=log_response(result["log"]),
        day_completed=result["day_completed"],
        challenge_completed=result["challenge_completed"],
        challenge_failed=result["challenge_failed"],
        lives_remaining=result["lives_remaining"],
    )


@app.delete("/habits/{habit_id}/log/{log_date}", response_model=MessageResponse, tags=["Challenge Habits"])
def unlog_challenge_habit(
    habit_id: int, log_date: date,
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    db: Session = Depends(get_db)
):
    """Borra el registro de ese día (el progreso ya contado no se deshace)"""
    challenge_service.unlog_habit_completion(db, user, habit_id, log_date, timezone)
    return {"message": "Registro eliminado"}


# =============================================================================
# ===================== SECCIÓN 5: PERSONAL HABITS ============================
# =============================================================================

@app.post("/user-habits", response_model=PersonalHabitResponse, status_code=201, tags=["Personal Habits"])
def create_personal_habit(
    data: PersonalHabitCreate,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return personal_service.create_habit(db, user, data.title, data.description, data.color)


@app.get("/user-habits", response_model=list[PersonalHabitResponse], tags=["Personal Habits"])
def list_personal_habits(
    include_archived: bool = False,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return personal_service.list_habits(db, user, include_archived)


@app.get("/user-habits/analytics/summary", response_model=HabitsSummaryResponse, tags=["Personal Habits"])
def personal_habits_summary(
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Rachas y estado de hoy de todos los hábitos no archivados"""
    return personal_service.get_habits_summary(db, user, timezone, now)


@app.get("/user-habits/{habit_id}", response_model=PersonalHabitDetail, tags=["Personal Habits"])
def get_personal_habit(
    habit_id: int,
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    habit = personal_service.get_owned(db, user, habit_id)
    return PersonalHabitDetail(
        **PersonalHabitResponse.model_validate(habit).model_dump(),
        completed_today=personal_service.completed_today(db, habit, timezone, now),
    )


@app.patch("/user-habits/{habit_id}", response_model=PersonalHabitResponse, tags=["Personal Habits"])
def update_personal_habit(
    habit_id: int, data: PersonalHabitUpdate,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return personal_service.update_habit(db, user, habit_id, data.model_dump(exclude_unset=True))


@app.delete("/user-habits/{habit_id}", response_model=MessageResponse, tags=["Personal Habits"])
def delete_personal_habit(habit_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Elimina el hábito y todo su historial"""
    personal_service.delete_habit(db, user, habit_id)
    return {"message": "Hábito eliminado"}


@app.patch("/user-habits/{habit_id}/archive", response_model=PersonalHabitResponse, tags=["Personal Habits"])
def toggle_archive_personal_habit(
    habit_id: int,
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Archiva o desarchiva (conserva el historial)"""
    return personal_service.toggle_archive(db, user, habit_id)


@app.post("/user-habits/{habit_id}/log", response_model=HabitLogResponse, status_code=201, tags=["Personal Habits"])
def log_personal_habit(
    habit_id: int,
    data: Optional[HabitLogCreate] = None,
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    day = data.log_date if data else None
    log = personal_service.log_habit(db, user, habit_id, timezone, now, day)
    return log_response(log)


@app.delete("/user-habits/{habit_id}/log/{log_date}", response_model=MessageResponse, tags=["Personal Habits"])
def unlog_personal_habit(
    habit_id: int, log_date: date,
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    db: Session = Depends(get_db)
):
    personal_service.unlog_habit(db, user, habit_id, log_date, timezone)
    return {"message": "Registro eliminado"}


@app.get("/user-habits/{habit_id}/analytics", response_model=HabitAnalyticsResponse, tags=["Personal Habits"])
def personal_habit_analytics(
    habit_id: int,
    user: User = Depends(get_current_user),
    timezone: str = Depends(get_timezone),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Rachas, tasas de los últimos 7/30 días y desglose semanal y mensual"""
    return personal_service.get_habit_analytics(db, user, habit_id, timezone, now)
