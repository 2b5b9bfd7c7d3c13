"""
Conversões de tipos usadas na persistência.

Os valores vêm de texto livre (TESS) ou JSON (CNPJÁ); nada aqui levanta
exceção, valores ilegíveis viram None.
"""
import re
from datetime import date, datetime
from typing import Any, Optional
from dateutil import parser as date_parser

VALORES_VAZIOS = {"", "n/a", "na", "não informado", "nao informado", "-", "null", "none"}


def vazio(valor: Any) -> bool:
    """True para None, strings em branco/placeholders e coleções vazias"""
    if valor is None:
        return True
    if isinstance(valor, str):
        return valor.strip().lower() in VALORES_VAZIOS
    if isinstance(valor, (list, dict, tuple, set)):
        return len(valor) == 0
    return False


def texto(valor: Any, max_len: Optional[int] = None) -> Optional[str]:
    if vazio(valor):
        return None
    resultado = str(valor).strip()
    if max_len:
        resultado = resultado[:max_len]
    return resultado


def normalizar_uf(valor: Any) -> Optional[str]:
    """Sigla do estado com exatamente 2 caracteres em maiúsculas, ou None"""
    if vazio(valor):
        return None
    uf = str(valor).strip().upper()[:2]
    return uf if len(uf) == 2 else None


def parse_moeda(valor: Any) -> Optional[float]:
    """
    Converte texto de moeda para float.
    Remove tudo que não é dígito ou vírgula e troca a vírgula por ponto:
    "R$ 1.234,56" -> 1234.56
    """
    if vazio(valor):
        return None
    if isinstance(valor, bool):
        return None
    if isinstance(valor, (int, float)):
        return float(valor)
    limpo = re.sub(r"[^\d,]", "", str(valor)).replace(",", ".")
    if not limpo or limpo.count(".") > 1:
        return None
    try:
        return float(limpo)
    except ValueError:
        return None


def parse_float(valor: Any, padrao: Optional[float] = None) -> Optional[float]:
    """Número com ponto ou vírgula decimal; percentuais aceitam o sufixo %"""
    if vazio(valor) or isinstance(valor, bool):
        return padrao
    if isinstance(valor, (int, float)):
        return float(valor)
    limpo = str(valor).strip().replace("%", "").strip()
    if "," in limpo:
        limpo = limpo.replace(".", "").replace(",", ".")
    try:
        return float(limpo)
    except ValueError:
        return padrao


def parse_int(valor: Any) -> Optional[int]:
    if vazio(valor) or isinstance(valor, bool):
        return None
    if isinstance(valor, int):
        return valor
    if isinstance(valor, float):
        return int(valor)
    digitos = re.sub(r"[^\d-]", "", str(valor))
    try:
        return int(digitos)
    except ValueError:
        return None


def int_flag(valor: Any) -> Optional[int]:
    """Converte sim/não, bool ou número em 0/1"""
    if valor is None:
        return None
    if isinstance(valor, bool):
        return 1 if valor else 0
    if isinstance(valor, (int, float)):
        return 1 if valor else 0
    normalizado = str(valor).strip().lower()
    if normalizado in ("1", "s", "sim", "true", "yes", "x"):
        return 1
    if normalizado in ("0", "n", "nao", "não", "false", "no"):
        return 0
    return None


def parse_data(valor: Any) -> Optional[datetime]:
    """Aceita ISO 8601 e dd/mm/aaaa (com ou sem hora)"""
    if vazio(valor):
        return None
    if isinstance(valor, datetime):
        return valor
    if isinstance(valor, date):
        return datetime(valor.year, valor.month, valor.day)

    texto_data = str(valor).strip()
    try:
        if re.match(r"^\d{4}-\d{2}-\d{2}", texto_data):
            resultado = date_parser.isoparse(texto_data)
        else:
            resultado = date_parser.parse(texto_data, dayfirst=True)
    except (ValueError, OverflowError):
        return None
    # colunas DateTime sem timezone
    return resultado.replace(tzinfo=None)


def parse_somente_data(valor: Any) -> Optional[date]:
    resultado = parse_data(valor)
    return resultado.date() if resultado else None


def somente_digitos(valor: Any) -> str:
    if valor is None:
        return ""
    return re.sub(r"\D", "", str(valor))
