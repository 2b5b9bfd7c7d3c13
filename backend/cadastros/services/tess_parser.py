"""
Parser da resposta textual da TESS.

A TESS devolve texto livre que normalmente contém um bloco JSON com o
relatório estruturado. Estratégia:
1. Bloco ```json ... ``` (não guloso)
2. Primeiro "{" até o último "}" (guloso)
3. Fallback por regex sobre rótulos conhecidos do relatório SPC
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from cadastros.schemas.tess import TessAdministrador, TessDocumento, TessSocio

logger = logging.getLogger(__name__)

JSON_CERCADO_REGEX = re.compile(r"```json\s*(\{[\s\S]*?\})\s*```")
JSON_GULOSO_REGEX = re.compile(r"(\{[\s\S]*\})")

LINHA = r"([^\n\r]+)"
ROTULOS_EMPRESA = {
    "razao_social": re.compile(r"\b(?:raz[ãa]o social|nome empresarial)\b[:\s]*" + LINHA, re.IGNORECASE),
    "nome_fantasia": re.compile(r"\bnome fantasia\b[:\s]*" + LINHA, re.IGNORECASE),
    "situacao_cnpj": re.compile(r"\bsitua[çc][ãa]o\b[:\s]*" + LINHA, re.IGNORECASE),
    "porte": re.compile(r"\bporte\b[:\s]*" + LINHA, re.IGNORECASE),
    "natureza_juridica": re.compile(r"\bnatureza jur[íi]dica\b[:\s]*" + LINHA, re.IGNORECASE),
    "fundacao": re.compile(r"\bdata (?:de )?abertura\b[:\s]*(\d{2}/\d{2}/\d{4})", re.IGNORECASE),
    "capital_social": re.compile(r"\bcapital social\b[:\s]*R?\$?\s*([\d.,]+)", re.IGNORECASE),
    "atividade_principal": re.compile(r"\b(?:atividade principal|cnae)\b[:\s]*" + LINHA, re.IGNORECASE),
}
ROTULOS_ENDERECO = {
    "logradouro": re.compile(r"\bendere[çc]o\b[:\s]*" + LINHA, re.IGNORECASE),
    "cidade": re.compile(r"\b(?:munic[íi]pio|cidade)\b[:\s]*" + LINHA, re.IGNORECASE),
    "estado": re.compile(r"\b(?i:uf|estado)\b[:\s]*([A-Z]{2})\b"),
    "cep": re.compile(r"\bcep\b[:\s]*(\d{5}-?\d{3})", re.IGNORECASE),
}
TELEFONE_REGEX = re.compile(r"\b(?:telefone|fone)\b[:\s]*(\(?\d[\d\s\-()]{7,}\d)", re.IGNORECASE)
EMAIL_REGEX = re.compile(r"\be-?mail\b[:\s]*([^\s@]+@[^\s]+)", re.IGNORECASE)

SECAO_SOCIOS_REGEX = re.compile(
    r"\b(?:s[óo]cios|quadro societ[áa]rio|controle societ[áa]rio)\b(.*?)(?=quadro administrativo|administradores|$)",
    re.IGNORECASE | re.DOTALL,
)
SECAO_ADMINISTRADORES_REGEX = re.compile(
    r"\b(?:quadro administrativo|administradores)\b(.*?)(?=hist[óo]rico|score|$)",
    re.IGNORECASE | re.DOTALL,
)
DOCUMENTO_REGEX = re.compile(r"(\d{3}\.?\d{3}\.?\d{3}-?\d{2}|\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2})")
PERCENTUAL_REGEX = re.compile(r"(\d+(?:[.,]\d+)?)\s*%")
CARGO_REGEX = re.compile(r"\b(?:cargo|fun[çc][ãa]o)\b[:\s]*" + LINHA, re.IGNORECASE)


def remover_nulos(valor: Any) -> Any:
    """Remove recursivamente chaves com None para os defaults do modelo valerem"""
    if isinstance(valor, dict):
        return {k: remover_nulos(v) for k, v in valor.items() if v is not None}
    if isinstance(valor, list):
        return [remover_nulos(v) for v in valor if v is not None]
    return valor


def encontrar_json(texto: str) -> Optional[Dict[str, Any]]:
    """Localiza e decodifica o JSON embutido na resposta"""
    for regex in (JSON_CERCADO_REGEX, JSON_GULOSO_REGEX):
        match = regex.search(texto)
        if not match:
            continue
        try:
            dados = json.loads(match.group(1))
        except json.JSONDecodeError as e:
            logger.debug(f"[TESS] JSON inválido ({regex.pattern[:20]}...): {e}")
            continue
        if isinstance(dados, dict):
            return dados
    return None


def parse_json(texto: str) -> Optional[TessDocumento]:
    dados = encontrar_json(texto)
    if dados is None:
        return None
    try:
        documento = TessDocumento.model_validate(remover_nulos(dados))
    except PydanticValidationError as e:
        logger.warning(f"[TESS] JSON encontrado mas fora do formato esperado: {e.error_count()} erros")
        return None
    return documento.model_copy(update={"metodo_extracao": "json"})


def _primeiro(regex: re.Pattern, texto: str) -> Optional[str]:
    match = regex.search(texto)
    if not match:
        return None
    valor = match.group(1).strip()
    return valor or None


def _blocos(secao: str) -> List[str]:
    """Quebra a seção em blocos, um por documento (CPF/CNPJ) encontrado"""
    posicoes = [m.start() for m in DOCUMENTO_REGEX.finditer(secao)]
    return [secao[inicio:fim] for inicio, fim in zip(posicoes, posicoes[1:] + [len(secao)])]


def _nome_no_bloco(bloco: str, documento: str) -> Optional[str]:
    resto = bloco.replace(documento, "", 1)
    for linha in re.split(r"[\n\r|;]", resto):
        linha = linha.strip(" -:\t")
        if linha and not re.match(r"(?i)(cargo|fun[çc][ãa]o|participa|percentual|entrada)", linha) and re.search(r"[A-Za-zÀ-ú]{2}", linha):
            return linha
    return None


def _socios_regex(texto: str) -> List[TessSocio]:
    secao = _primeiro(SECAO_SOCIOS_REGEX, texto)
    if not secao:
        return []

    socios = []
    for bloco in _blocos(secao):
        documento = DOCUMENTO_REGEX.search(bloco).group(1)
        percentual = _primeiro(PERCENTUAL_REGEX, bloco)
        socios.append(TessSocio(
            cpf=documento,
            nome=_nome_no_bloco(bloco, documento),
            cargo=_primeiro(CARGO_REGEX, bloco),
            participacao={"percentual": percentual},
        ))
    return socios


def _administradores_regex(texto: str) -> List[TessAdministrador]:
    secao = _primeiro(SECAO_ADMINISTRADORES_REGEX, texto)
    if not secao:
        return []

    administradores = []
    for bloco in _blocos(secao):
        documento = DOCUMENTO_REGEX.search(bloco).group(1)
        administradores.append(TessAdministrador(
            cpf=documento,
            nome=_nome_no_bloco(bloco, documento),
            cargo=_primeiro(CARGO_REGEX, bloco),
        ))
    return administradores


def parse_regex(texto: str) -> TessDocumento:
    """
    Extração por rótulos do relatório. Campos ausentes ficam vazios;
    se nada casar, o documento volta com metodo_extracao="vazio".
    """
    empresa = {campo: _primeiro(regex, texto) for campo, regex in ROTULOS_EMPRESA.items()}
    endereco = {campo: _primeiro(regex, texto) for campo, regex in ROTULOS_ENDERECO.items()}

    telefone = _primeiro(TELEFONE_REGEX, texto)
    email = _primeiro(EMAIL_REGEX, texto)

    documento = TessDocumento(
        empresa={
            **{k: v for k, v in empresa.items() if v},
            "endereco": {k: v for k, v in endereco.items() if v},
            "telefones": {"fixos": [telefone] if telefone else []},
            "emails": [email] if email else [],
        },
        controle_societario=_socios_regex(texto),
        quadro_administrativo=_administradores_regex(texto),
    )

    encontrou = (
        any(empresa.values()) or any(endereco.values()) or telefone or email
        or documento.controle_societario or documento.quadro_administrativo
    )
    return documento.model_copy(update={"metodo_extracao": "regex" if encontrou else "vazio"})


def parse_resposta_tess(texto: Optional[str]) -> TessDocumento:
    """
    Converte a resposta da TESS em TessDocumento.
    Nunca levanta exceção: texto sem dados reconhecíveis gera documento vazio.
    """
    if not texto or not texto.strip():
        return TessDocumento()

    documento = parse_json(texto)
    if documento is not None:
        logger.info("[TESS] Dados extraídos do bloco JSON")
        return documento

    logger.info("[TESS] JSON não encontrado, usando extração por regex")
    documento = parse_regex(texto)
    if documento.metodo_extracao == "vazio":
        logger.warning("[TESS] Nenhum dado estruturado reconhecido na resposta")
    return documento
