from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum


class PipelineState(str, Enum):
    IDLE = "IDLE"
    CONSULTANDO_SPC = "CONSULTANDO_SPC"
    PROCESSANDO_TESS = "PROCESSANDO_TESS"
    CONSULTANDO_CNPJA = "CONSULTANDO_CNPJA"
    PERSISTINDO = "PERSISTINDO"
    CADASTRANDO_ATAK = "CADASTRANDO_ATAK"
    CONCLUIDO = "CONCLUIDO"
    FALHOU = "FALHOU"


class PipelineResult(BaseModel):
    """Resultado do processamento de um CNPJ"""
    cnpj: str
    success: bool
    estado: PipelineState
    mensagem: Optional[str] = None
    error: Optional[str] = None
    from_cache: bool = False

    arquivo_pdf: Optional[str] = None
    empresa_id: Optional[int] = None
    consulta_id: Optional[int] = None
    cnpja_disponivel: bool = False

    atak_cliente_id: Optional[int] = None
    atak_ja_cadastrado: Optional[bool] = None
    atak_erro: Optional[str] = None

    # unidades cobradas por provedor
    spc_consultas: int = 0
    tess_creditos: float = 0
    cnpja_unidades: int = 0

    tempo_segundos: float = 0


class BatchItem(BaseModel):
    cnpj: str
    success: bool
    mensagem: Optional[str] = None
    error: Optional[str] = None
    tempo_segundos: float = 0


class BatchReport(BaseModel):
    """Resumo de um lote de CNPJs"""
    total: int
    sucessos: int
    falhas: int
    itens: List[BatchItem] = Field(default_factory=list)
    tempo_segundos: float = 0
    iniciado_em: datetime = Field(default_factory=datetime.now)
    custos: Dict[str, Any] = Field(default_factory=dict)
    arquivo_relatorio: Optional[str] = None
