"""
=============================================================================
AUTH.PY — Autenticación y Permisos
=============================================================================
Tres piezas:
  1. Contraseñas → bcrypt (solo se guarda el hash)
  2. Tokens      → JWT firmado con SECRET_KEY, válido 30 días
  3. Dependencias FastAPI:
       get_current_user → el usuario del token (o 401)
       require_admin    → igual, pero solo admins (o 403)

El token solo lleva el id del usuario ("sub"). El rol y la zona horaria
se leen SIEMPRE de la BD: si cambian, el cambio se ve en la siguiente
petición sin tener que volver a hacer login.
"""

import os
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from database import get_db
from models import User, UserRole

SECRET_KEY = os.getenv("SECRET_KEY", "rachaviva-dev-secret-key-cambiar-en-produccion")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = 30


# ─────────────────────────────────────────────────────────────────────────────
# CONTRASEÑAS
# ─────────────────────────────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    """El usuario si email y contraseña coinciden; None en cualquier otro caso"""
    user = db.query(User).filter(User.email == email).first()
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


# ─────────────────────────────────────────────────────────────────────────────
# TOKENS JWT
# ─────────────────────────────────────────────────────────────────────────────

def create_access_token(user: User) -> str:
    """JWT con sub = id del usuario, email de referencia y caducidad"""
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "exp": datetime.utcnow() + timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS),
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Claims del token, o None si la firma no cuadra o ha caducado"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


# ─────────────────────────────────────────────────────────────────────────────
# DEPENDENCIAS
# ─────────────────────────────────────────────────────────────────────────────

bearer = HTTPBearer(auto_error=False)
# auto_error=False → sin cabecera respondemos nosotros con 401 (no 403)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"}
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db)
) -> User:
    """
    Usuario dueño del token "Authorization: Bearer <jwt>".

    401 si falta la cabecera, si el token no es válido o si el usuario
    ya no existe.
    """
    if credentials is None:
        raise _unauthorized("Falta el token de acceso")

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Token inválido o expirado")

    user_id = payload.get("sub")
    if user_id is None or not str(user_id).isdigit():
        raise _unauthorized("Token sin identificador de usuario")

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise _unauthorized("El usuario del token ya no existe")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.admin.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo los administradores pueden hacer esto"
        )
    return user
