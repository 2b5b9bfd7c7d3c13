"""
Tipos da resposta estruturada da TESS (relatório SPC + POSITIVO AVANÇADO PJ).

Todo campo é opcional: a TESS devolve JSON arbitrário e seções inteiras
podem faltar. Um campo com formato inesperado é descartado sem invalidar
o restante do documento. Os dois extratores (JSON e regex) devolvem
TessDocumento.
"""
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

Numero = Optional[Union[int, float, str]]


def como_lista(valor: Any) -> Any:
    """Valor único (texto, número ou objeto) vira lista de um item"""
    if valor is None:
        return []
    if isinstance(valor, (str, int, float, dict)):
        return [valor]
    return valor


def _descartar_invalidos(dados: Dict[str, Any], erro: ValidationError) -> Dict[str, Any]:
    """Remove os campos, ou os itens de lista, apontados pelos erros de validação"""
    limpos = dict(dados)
    itens_invalidos: Dict[str, set] = {}

    for detalhe in erro.errors():
        loc = detalhe.get("loc") or ()
        if not loc or loc[0] not in limpos:
            continue
        campo = loc[0]
        if len(loc) > 1 and isinstance(loc[1], int) and isinstance(limpos[campo], list):
            itens_invalidos.setdefault(campo, set()).add(loc[1])
        else:
            limpos.pop(campo)

    for campo, indices in itens_invalidos.items():
        if campo in limpos:
            limpos[campo] = [item for i, item in enumerate(limpos[campo]) if i not in indices]

    return limpos


class TessModel(BaseModel):
    """Base tolerante: números viram texto onde o campo é str e campos inválidos são ignorados"""

    class Config:
        coerce_numbers_to_str = True

    @model_validator(mode="wrap")
    @classmethod
    def ignorar_campos_invalidos(cls, dados: Any, handler):
        try:
            return handler(dados)
        except ValidationError as e:
            if not isinstance(dados, dict):
                raise
            limpos = _descartar_invalidos(dados, e)
            descartados = sorted(str(campo) for campo in set(dados) - set(limpos))
            logger.warning(
                f"[TESS] {cls.__name__}: {e.error_count()} campos fora do formato ignorados"
                + (f" ({', '.join(descartados)})" if descartados else "")
            )
            return handler(limpos)


class TessConsulta(TessModel):
    operador: Optional[str] = None
    data_hora: Optional[str] = None
    produto: Optional[str] = None
    protocolo: Optional[str] = None


class TessEndereco(TessModel):
    logradouro: Optional[str] = None
    numero: Optional[str] = None
    complemento: Optional[str] = None
    bairro: Optional[str] = None
    cidade: Optional[str] = None
    estado: Optional[str] = None
    cep: Optional[str] = None


class TessTelefones(TessModel):
    fixos: List[str] = Field(default_factory=list)
    celulares: List[str] = Field(default_factory=list)

    @field_validator("fixos", "celulares", mode="before")
    @classmethod
    def valor_unico_vira_lista(cls, valor: Any) -> Any:
        return como_lista(valor)


class TessEmpresa(TessModel):
    cnpj: Optional[str] = None
    razao_social: Optional[str] = None
    nome_fantasia: Optional[str] = None
    situacao_cnpj: Optional[str] = None
    atualizacao: Optional[str] = None
    fundacao: Optional[str] = None
    natureza_juridica: Optional[str] = None
    porte: Optional[str] = None
    capital_social: Numero = None
    atividade_principal: Optional[str] = None
    inscricao_estadual: Optional[str] = None
    endereco: TessEndereco = Field(default_factory=TessEndereco)
    telefones: TessTelefones = Field(default_factory=TessTelefones)
    emails: List[str] = Field(default_factory=list)

    @field_validator("emails", mode="before")
    @classmethod
    def valor_unico_vira_lista(cls, valor: Any) -> Any:
        return como_lista(valor)

    @field_validator("telefones", mode="before")
    @classmethod
    def telefones_sem_tipo(cls, valor: Any) -> Any:
        """Telefones soltos (texto ou lista) são tratados como fixos"""
        if isinstance(valor, (str, int, list)):
            return {"fixos": como_lista(valor)}
        return valor


class TessOcorrencias(TessModel):
    score_pj: Numero = None
    dados_contato: Numero = None
    historico_scr: Numero = None
    historico_pagamentos_positivo: Numero = None
    limite_credito_pj: Numero = None
    quadro_administrativo: Numero = None
    consultas_realizadas: Numero = None
    gasto_financeiro_estimado: Numero = None
    controle_societario: Numero = None


class TessParticipacao(TessModel):
    valor: Numero = None
    percentual: Numero = None


class TessSocio(TessModel):
    cpf: Optional[str] = None
    nome: Optional[str] = None
    entrada: Optional[str] = None
    participacao: TessParticipacao = Field(default_factory=TessParticipacao)
    cargo: Optional[str] = None


class TessAdministrador(TessModel):
    cpf: Optional[str] = None
    nome: Optional[str] = None
    cargo: Optional[str] = None
    eleito_em: Optional[str] = None


class TessParcelas(TessModel):
    a_vencer_percentual: Numero = None
    pagas_percentual: Numero = None
    abertas_percentual: Numero = None


class TessHistoricoPagamento(TessModel):
    compromissos_ativos: Numero = None
    contratos_ativos: Numero = None
    credores: Numero = None
    parcelas: TessParcelas = Field(default_factory=TessParcelas)
    contratos_pagos: Numero = None
    contratos_abertos: Numero = None
    uso_cheque_especial: Optional[Union[bool, int, str]] = None


class TessScore(TessModel):
    score: Numero = None
    risco: Optional[str] = None
    probabilidade_inadimplencia: Numero = None


class TessRegistroConsulta(TessModel):
    data_hora: Optional[str] = None
    associado: Optional[str] = None
    cidade: Optional[str] = None
    origem: Optional[str] = None


class TessConsultas(TessModel):
    ultimos_30_dias: Numero = None
    ultimos_90_dias: Numero = None
    registros: List[TessRegistroConsulta] = Field(default_factory=list)

    @field_validator("registros", mode="before")
    @classmethod
    def valor_unico_vira_lista(cls, valor: Any) -> Any:
        return como_lista(valor)


class TessValor(TessModel):
    valor: Numero = None


class TessGarantias(TessModel):
    quantidade_maxima: Numero = None
    tipos: List[str] = Field(default_factory=list)

    @field_validator("tipos", mode="before")
    @classmethod
    def valor_unico_vira_lista(cls, valor: Any) -> Any:
        return como_lista(valor)


class TessScr(TessModel):
    atualizacao: Optional[str] = None
    quantidade_operacoes: Numero = None
    inicio_relacionamento: Optional[str] = None
    valor_contratado: Numero = None
    instituicoes: Numero = None
    carteira_ativa_total: Numero = None
    vencimento_ultima_parcela: Optional[str] = None
    garantias: TessGarantias = Field(default_factory=TessGarantias)


class TessDocumento(TessModel):
    """Documento completo extraído pela TESS"""
    consulta: TessConsulta = Field(default_factory=TessConsulta)
    empresa: TessEmpresa = Field(default_factory=TessEmpresa)
    ocorrencias: TessOcorrencias = Field(default_factory=TessOcorrencias)
    controle_societario: List[TessSocio] = Field(default_factory=list)
    quadro_administrativo: List[TessAdministrador] = Field(default_factory=list)
    historico_pagamento_positivo: TessHistoricoPagamento = Field(default_factory=TessHistoricoPagamento)
    score_credito: TessScore = Field(default_factory=TessScore)
    consultas: TessConsultas = Field(default_factory=TessConsultas)
    limite_credito: TessValor = Field(default_factory=TessValor)
    gasto_financeiro_estimado: TessValor = Field(default_factory=TessValor)
    scr: TessScr = Field(default_factory=TessScr)
    metodo_extracao: str = "vazio"  # json, regex ou vazio

    @field_validator("controle_societario", "quadro_administrativo", mode="before")
    @classmethod
    def valor_unico_vira_lista(cls, valor: Any) -> Any:
        return como_lista(valor)


class TessResposta(TessModel):
    """Resposta do agente TESS já validada"""
    file_id: str
    conteudo: str
    creditos: Optional[float] = None
    arquivo_saida: Optional[str] = None
