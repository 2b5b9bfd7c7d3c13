from sqlalchemy import Column, Integer, String, Date, ForeignKey, Numeric
from sqlalchemy.orm import relationship
from cadastros.core.database import Base


class Socio(Base):
    """
    Sócio (controle societário).
    Recriado a cada execução: linhas antigas da empresa são apagadas antes do insert.
    """
    __tablename__ = "socios"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresa.id"), nullable=False, index=True)

    cpf = Column(String(20), nullable=True)
    nome = Column(String(300), nullable=True)
    tipo_pessoa = Column(String(1), nullable=True)  # F ou J
    entrada = Column(Date, nullable=True)
    participacao = Column(Numeric(18, 2), nullable=True)
    valor_participacao = Column(Numeric(18, 2), nullable=True)
    percentual_participacao = Column(Numeric(7, 4), nullable=True)
    cargo = Column(String(150), nullable=True)

    empresa = relationship("Empresa", back_populates="socios")


class QuadroAdministrativo(Base):
    """Administradores. Mesmo ciclo de vida dos sócios (apaga e recria)."""
    __tablename__ = "quadro_administrativo"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresa.id"), nullable=False, index=True)

    cpf = Column(String(20), nullable=True)
    nome = Column(String(300), nullable=True)
    cargo = Column(String(150), nullable=True)
    eleito_em = Column(Date, nullable=True)

    empresa = relationship("Empresa", back_populates="quadro_administrativo")
