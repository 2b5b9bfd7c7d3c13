from sqlalchemy import Column, Integer, String, Boolean, Date, ForeignKey, Numeric
from sqlalchemy.orm import relationship
from cadastros.core.database import Base


class HistoricoPagamentoPositivo(Base):
    __tablename__ = "historico_pagamento_positivo"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresa.id"), nullable=False, index=True)

    compromissos_ativos = Column(String(100), nullable=True)
    contratos_ativos = Column(Integer, nullable=True)
    credores = Column(Integer, nullable=True)
    parcelas_a_vencer_percentual = Column(Numeric(7, 2), nullable=True)
    parcelas_pagas_percentual = Column(Numeric(7, 2), nullable=True)
    parcelas_abertas_percentual = Column(Numeric(7, 2), nullable=True)
    contratos_pagos = Column(String(100), nullable=True)
    contratos_abertos = Column(String(100), nullable=True)
    uso_cheque_especial = Column(Boolean, nullable=True)


class ScoreCredito(Base):
    __tablename__ = "score_credito"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresa.id"), nullable=False, index=True)

    score = Column(Integer, nullable=True)
    risco = Column(String(100), nullable=True)
    probabilidade_inadimplencia = Column(Numeric(7, 2), nullable=True)
    limite_credito_valor = Column(Numeric(18, 2), nullable=True)
    gasto_financeiro_estimado_valor = Column(Numeric(18, 2), nullable=True)


class Scr(Base):
    """Sistema de Informações de Crédito (Bacen) resumido no relatório"""
    __tablename__ = "scr"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresa.id"), nullable=False, index=True)

    atualizacao = Column(Date, nullable=True)
    quantidade_operacoes = Column(Integer, nullable=True)
    inicio_relacionamento = Column(Date, nullable=True)
    valor_contratado = Column(String(100), nullable=True)
    instituicoes = Column(Integer, nullable=True)
    carteira_ativa_total = Column(String(100), nullable=True)
    vencimento_ultima_parcela = Column(String(100), nullable=True)
    garantias_quantidade_maxima = Column(Integer, nullable=True)

    tipos_garantias = relationship("TipoGarantia", back_populates="scr")


class TipoGarantia(Base):
    """Tipos de garantia do SCR. Apagados e recriados por id_scr."""
    __tablename__ = "tipos_garantias"

    id = Column(Integer, primary_key=True, index=True)
    id_scr = Column(Integer, ForeignKey("scr.id"), nullable=False, index=True)
    tipo_garantia = Column(String(200), nullable=False)

    scr = relationship("Scr", back_populates="tipos_garantias")
