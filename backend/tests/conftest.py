"""
Fixtures compartilhadas dos testes do pipeline
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cadastros.core.config import Settings
from cadastros.core.database import Base
import cadastros.models  # noqa: F401


def make_settings(**overrides) -> Settings:
    """Settings isoladas do .env local"""
    valores = {
        "SPC_OPERADOR": "operador",
        "SPC_SENHA": "senha",
        "SPC_PALAVRA_SECRETA": "segredo",
        "TESS_API_KEY": "tess-key",
        "TESS_AGENT_ID": "42",
        "CNPJA_API_KEY": "cnpja-key",
        "JSON_LOGS": False,
        "LOG_FILE": None,
        "REPORTS_PATH": None,
    }
    valores.update(overrides)
    return Settings(_env_file=None, **valores)


class FakeSleep:
    """Substitui asyncio.sleep registrando as esperas"""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()
