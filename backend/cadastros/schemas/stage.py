from pydantic import BaseModel, Field
from typing import Any, Optional
from datetime import datetime


class StageResult(BaseModel):
    """
    Resultado uniforme de uma etapa externa (SPC, TESS, CNPJÁ, Atak).
    Imutável depois de criado: o orquestrador apenas lê e combina.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)
    attempts: int = 0

    class Config:
        frozen = True
        arbitrary_types_allowed = True

    @classmethod
    def ok(cls, data: Any = None, attempts: int = 1) -> "StageResult":
        return cls(success=True, data=data, attempts=attempts)

    @classmethod
    def fail(cls, error: str, attempts: int = 1) -> "StageResult":
        return cls(success=False, error=error, attempts=attempts)
