from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from cadastros.core.database import Base
import enum


class RegistrationStatus(str, enum.Enum):
    CONSULTADO = "CONSULTADO"          # dados persistidos, Atak não executado
    CADASTRADO_ATAK = "CADASTRADO_ATAK"
    JA_CADASTRADO_ATAK = "JA_CADASTRADO_ATAK"
    ERRO_ATAK = "ERRO_ATAK"


class ClientRegistration(Base):
    """
    Registro de cadastro do cliente.
    O resultado do Atak fica aqui; falha no Atak nunca desfaz os dados da empresa.
    """
    __tablename__ = "client_registrations"

    id = Column(Integer, primary_key=True, index=True)
    cnpj = Column(String(14), nullable=False, unique=True, index=True)
    empresa_id = Column(Integer, ForeignKey("empresa.id"), nullable=True)
    razao_social = Column(String(300), nullable=True)
    status = Column(String(30), nullable=False, default=RegistrationStatus.CONSULTADO.value)

    atak_cliente_id = Column(Integer, nullable=True)
    atak_resposta_json = Column(Text, nullable=True)
    atak_data_cadastro = Column(DateTime, nullable=True)
    atak_erro = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
