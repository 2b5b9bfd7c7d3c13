from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()

SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Optional[Engine] = None


def init_db(database_url: str, create_tables: bool = False) -> Engine:
    """
    Cria o engine do processo e associa ao SessionLocal.
    Deve ser chamado uma vez no início do processo.
    """
    global _engine

    if _engine is not None:
        return _engine

    kwargs = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
    else:
        # max ~10 conexões por processo
        kwargs["pool_size"] = 5
        kwargs["max_overflow"] = 5

    _engine = create_engine(database_url, **kwargs)
    SessionLocal.configure(bind=_engine)

    if create_tables:
        # Importa os modelos para registrar as tabelas no metadata
        import cadastros.models  # noqa: F401
        Base.metadata.create_all(bind=_engine)

    logger.info(f"[DB] Engine inicializado ({_engine.url.get_backend_name()})")
    return _engine


def close_db() -> None:
    """Libera o pool de conexões no fim do processo"""
    global _engine

    if _engine is not None:
        _engine.dispose()
        logger.info("[DB] Pool de conexões encerrado")
    _engine = None
