from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Numeric
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from cadastros.core.database import Base


class Consulta(Base):
    """Uma execução do pipeline (append-only)"""
    __tablename__ = "consulta"

    id = Column(Integer, primary_key=True, index=True)
    operador = Column(String(100), nullable=False)
    data_hora = Column(DateTime, nullable=False)
    produto = Column(String(200), nullable=False)
    protocolo = Column(String(100), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    empresas = relationship("ConsultaEmpresa", back_populates="consulta")


class ConsultaEmpresa(Base):
    """
    Vínculo entre uma consulta e a empresa consolidada.
    Guarda o texto bruto da TESS, créditos gastos e o JSON do CNPJÁ para auditoria.
    """
    __tablename__ = "consulta_empresa"

    id = Column(Integer, primary_key=True, index=True)
    consulta_id = Column(Integer, ForeignKey("consulta.id"), nullable=False, index=True)
    empresa_id = Column(Integer, ForeignKey("empresa.id"), nullable=False, index=True)

    arquivo_pdf = Column(String(500), nullable=True)
    tess_file_id = Column(String(100), nullable=True)
    tess_resposta = Column(Text, nullable=True)
    tess_creditos = Column(Numeric(12, 4), nullable=True)
    cnpja_resposta = Column(JSON, nullable=True)
    cnpja_unidades = Column(Integer, nullable=True)  # chamadas cobradas (base + suframa)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    consulta = relationship("Consulta", back_populates="empresas")


class ConsultaRealizada(Base):
    """Consultas de terceiros listadas no relatório SPC (append-only)"""
    __tablename__ = "consultas_realizadas"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresa.id"), nullable=False, index=True)
    id_consulta = Column(Integer, ForeignKey("consulta.id"), nullable=True)

    data_hora = Column(DateTime, nullable=True)
    associado = Column(String(300), nullable=True)
    cidade = Column(String(150), nullable=True)
    origem = Column(String(150), nullable=True)
