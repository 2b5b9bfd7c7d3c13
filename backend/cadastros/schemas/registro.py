from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class EnderecoPartes(BaseModel):
    logradouro: Optional[str] = None
    numero: Optional[str] = None
    complemento: Optional[str] = None
    bairro: Optional[str] = None
    cidade: Optional[str] = None
    estado: Optional[str] = None
    cep: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class CnpjaDados(BaseModel):
    """Projeção plana da resposta do CNPJÁ, pronta para o merge"""
    cnpj: str
    razao_social: Optional[str] = None
    nome_fantasia: Optional[str] = None
    situacao: Optional[str] = None
    data_abertura: Optional[str] = None
    natureza_juridica: Optional[str] = None
    porte: Optional[str] = None
    capital_social: Optional[float] = None
    atividade_principal: Optional[str] = None
    inscricao_estadual: Optional[str] = None
    inscricao_suframa: Optional[str] = None
    telefone: Optional[str] = None
    email: Optional[str] = None
    endereco: EnderecoPartes = Field(default_factory=EnderecoPartes)
    endereco_completo: Optional[str] = None


class CnpjaConsulta(BaseModel):
    """Resultado do adaptador CNPJÁ (resposta bruta + projeção)"""
    cnpj: str
    resposta: Dict[str, Any]
    dados: CnpjaDados
    suframa_consultado: bool = False
    unidades_cobradas: int = 1
    arquivo_saida: Optional[str] = None


class RegistroConsolidado(BaseModel):
    """
    Empresa canônica após o merge TESS + CNPJÁ.
    Todos os campos, exceto o CNPJ, são anuláveis de forma independente.
    """
    cnpj: str
    razao_social: Optional[str] = None
    nome_fantasia: Optional[str] = None
    situacao: Optional[str] = None
    porte: Optional[str] = None
    natureza_juridica: Optional[str] = None
    data_abertura: Optional[str] = None
    capital_social: Optional[Any] = None
    atividade_principal: Optional[str] = None
    endereco: EnderecoPartes = Field(default_factory=EnderecoPartes)
    endereco_completo: Optional[str] = None
    telefones: List[str] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)
    inscricao_estadual: Optional[str] = None
    inscricao_suframa: Optional[str] = None
    fonte_endereco: Optional[str] = None  # tess ou cnpja
    resposta_tess: Optional[str] = None
    resposta_cnpja: Optional[Dict[str, Any]] = None
