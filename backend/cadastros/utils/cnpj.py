"""
Utilitários de CNPJ
"""
import re
from typing import Optional


def normalizar_cnpj(valor) -> str:
    """Remove toda pontuação. Números vindos do Excel voltam com zeros à esquerda."""
    if valor is None:
        return ""
    if isinstance(valor, float) and valor.is_integer():
        valor = int(valor)
    digitos = re.sub(r"\D", "", str(valor))
    if digitos and len(digitos) < 14 and isinstance(valor, int):
        digitos = digitos.zfill(14)
    return digitos


def cnpj_valido(cnpj: Optional[str]) -> bool:
    """Valida tamanho e dígitos verificadores"""
    digitos = normalizar_cnpj(cnpj)
    if len(digitos) != 14 or digitos == digitos[0] * 14:
        return False

    def digito(base: str, pesos) -> str:
        soma = sum(int(d) * p for d, p in zip(base, pesos))
        resto = soma % 11
        return "0" if resto < 2 else str(11 - resto)

    pesos1 = [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]
    pesos2 = [6] + pesos1
    d1 = digito(digitos[:12], pesos1)
    d2 = digito(digitos[:12] + d1, pesos2)
    return digitos[-2:] == d1 + d2


def formatar_cnpj(cnpj: str) -> str:
    """00.000.000/0000-00"""
    d = normalizar_cnpj(cnpj)
    if len(d) != 14:
        return cnpj
    return f"{d[:2]}.{d[2:5]}.{d[5:8]}/{d[8:12]}-{d[12:]}"
