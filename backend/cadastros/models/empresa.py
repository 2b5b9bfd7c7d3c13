from sqlalchemy import Column, Integer, String, Text, DateTime, Date, ForeignKey, JSON, Numeric
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from cadastros.core.database import Base


class Empresa(Base):
    """
    Empresa consolidada (SPC/TESS + CNPJÁ).
    Única entidade com upsert verdadeiro: o id precisa ser estável entre execuções.
    """
    __tablename__ = "empresa"

    id = Column(Integer, primary_key=True, index=True)
    cnpj = Column(String(14), nullable=False, unique=True, index=True)

    inscricao_estadual = Column(String(50), nullable=True)
    inscricao_suframa = Column(String(50), nullable=True)
    razao_social = Column(String(300), nullable=False)
    nome_fantasia = Column(String(300), nullable=True)
    situacao_cnpj = Column(String(100), nullable=True)
    atualizacao = Column(DateTime, nullable=True)
    fundacao = Column(Date, nullable=True)
    natureza_juridica = Column(String(200), nullable=True)
    porte = Column(String(100), nullable=True)
    capital_social = Column(Numeric(18, 2), nullable=True)
    atividade_principal = Column(Text, nullable=True)
    telefone = Column(String(50), nullable=True)
    email = Column(String(200), nullable=True)
    endereco_completo = Column(Text, nullable=True)

    id_consulta = Column(Integer, ForeignKey("consulta.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relacionamentos
    enderecos = relationship("Endereco", back_populates="empresa")
    socios = relationship("Socio", back_populates="empresa")
    quadro_administrativo = relationship("QuadroAdministrativo", back_populates="empresa")


class Endereco(Base):
    __tablename__ = "endereco"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresa.id"), nullable=False, index=True)

    logradouro = Column(String(300), nullable=True)
    numero = Column(String(30), nullable=True)
    complemento = Column(String(200), nullable=True)
    bairro = Column(String(150), nullable=True)
    cidade = Column(String(150), nullable=True)
    estado = Column(String(2), nullable=True)
    cep = Column(String(10), nullable=True)
    # colunas decimais sem NULL: default 0
    latitude = Column(Numeric(10, 7), nullable=False, default=0)
    longitude = Column(Numeric(10, 7), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    empresa = relationship("Empresa", back_populates="enderecos")


class DadosContato(Base):
    """Telefones e emails como arrays JSON"""
    __tablename__ = "dados_contato"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresa.id"), nullable=False, index=True)

    telefones_fixos = Column(JSON, nullable=True)
    telefones_celulares = Column(JSON, nullable=True)
    emails = Column(JSON, nullable=True)


class Ocorrencias(Base):
    """Flags 0/1 de seções presentes no relatório SPC"""
    __tablename__ = "ocorrencias"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresa.id"), nullable=False, index=True)

    score_pj = Column(Integer, nullable=True)
    dados_contato = Column(Integer, nullable=True)
    historico_scr = Column(Integer, nullable=True)
    historico_pagamentos_positivo = Column(Integer, nullable=True)
    limite_credito_pj = Column(Integer, nullable=True)
    quadro_administrativo = Column(Integer, nullable=True)
    consultas_realizadas = Column(Integer, nullable=True)
    gasto_financeiro_estimado = Column(Integer, nullable=True)
    controle_societario = Column(Integer, nullable=True)
