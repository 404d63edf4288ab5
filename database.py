"""
=============================================================================
DATABASE.PY — Conexión a la Base de Datos
=============================================================================
La URL sale de DATABASE_URL:
  - sin definir       → archivo SQLite local (rachaviva.db)
  - postgres(ql)://   → PostgreSQL con el driver psycopg (v3)
  - sqlite://         → SQLite en memoria (tests)

SQLite en memoria solo existe dentro de UNA conexión, así que ahí se usa
StaticPool: todas las sesiones comparten esa conexión y ven las mismas tablas.

Todas las fechas se guardan en UTC sin tzinfo. Ver timezones.py.
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def normalize_url(url: str) -> str:
    """Los proveedores dan "postgres://"; SQLAlchemy + psycopg quiere "postgresql+psycopg://" """
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def engine_options(url: str) -> dict:
    """Argumentos extra de create_engine según el motor"""
    if not url.startswith("sqlite"):
        return {}
    # FastAPI atiende peticiones síncronas en varios hilos
    options = {"connect_args": {"check_same_thread": False}}
    if url in IN_MEMORY_URLS:
        options["poolclass"] = StaticPool
    return options


DATABASE_URL = normalize_url(os.getenv("DATABASE_URL", "sqlite:///./rachaviva.db"))

engine = create_engine(DATABASE_URL, echo=False, **engine_options(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Dependencia de FastAPI: una sesión por petición, cerrada al terminar.
    Los servicios hacen commit ellos mismos cuando la operación está completa.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Crea las tablas que falten (no migra las existentes)"""
    import models  # noqa: F401  registra las tablas en Base.metadata

    Base.metadata.create_all(bind=engine)
