"""
Merge dos dados da TESS com os do CNPJÁ.

Regra por campo: valor da TESS se presente e não vazio, senão o do CNPJÁ,
senão None. SUFRAMA vem sempre do CNPJÁ. O endereço nunca mistura as duas
fontes.
"""
import logging
from typing import Any, List, Optional

from cadastros.schemas.registro import CnpjaConsulta, CnpjaDados, EnderecoPartes, RegistroConsolidado
from cadastros.schemas.tess import TessDocumento
from cadastros.utils.cnpj import normalizar_cnpj
from cadastros.utils.coercion import vazio

logger = logging.getLogger(__name__)


def _preferir(valor_tess: Any, valor_cnpja: Any) -> Any:
    if not vazio(valor_tess):
        return valor_tess.strip() if isinstance(valor_tess, str) else valor_tess
    if not vazio(valor_cnpja):
        return valor_cnpja
    return None


def _lista(valores: List[Optional[str]]) -> List[str]:
    resultado = []
    for valor in valores:
        if not vazio(valor) and valor.strip() not in resultado:
            resultado.append(valor.strip())
    return resultado


def compor_endereco(partes: EnderecoPartes) -> Optional[str]:
    componentes = [
        partes.logradouro, partes.numero, partes.complemento, partes.bairro,
        partes.cidade, partes.estado, partes.cep,
    ]
    texto = ", ".join(str(c).strip() for c in componentes if not vazio(c))
    return texto or None


def _endereco(documento: TessDocumento, cnpja: Optional[CnpjaDados]):
    tess = documento.empresa.endereco
    if not vazio(tess.logradouro):
        partes = EnderecoPartes(
            logradouro=tess.logradouro,
            numero=tess.numero,
            complemento=tess.complemento,
            bairro=tess.bairro,
            cidade=tess.cidade,
            estado=tess.estado,
            cep=tess.cep,
        )
        return partes, compor_endereco(partes), "tess"

    if cnpja is not None:
        return cnpja.endereco.model_copy(), cnpja.endereco_completo, "cnpja"

    return EnderecoPartes(), None, None


def reconciliar(
    cnpj: str,
    documento: Optional[TessDocumento],
    consulta_cnpja: Optional[CnpjaConsulta] = None,
    resposta_tess: Optional[str] = None,
) -> RegistroConsolidado:
    """
    Consolida TESS + CNPJÁ em um RegistroConsolidado.

    Função pura: as mesmas entradas sempre geram registros iguais.

    Args:
        cnpj: CNPJ consultado
        documento: Dados extraídos da TESS (None = nada extraído)
        consulta_cnpja: Resultado do CNPJÁ ou None se a consulta falhou
        resposta_tess: Texto bruto da TESS, guardado como veio

    Returns:
        RegistroConsolidado
    """
    documento = documento or TessDocumento()
    empresa = documento.empresa
    cnpja = consulta_cnpja.dados if consulta_cnpja else CnpjaDados(cnpj=normalizar_cnpj(cnpj))

    partes, endereco_completo, fonte = _endereco(documento, consulta_cnpja.dados if consulta_cnpja else None)

    telefones = _lista(empresa.telefones.fixos + empresa.telefones.celulares) or _lista([cnpja.telefone])
    emails = _lista(empresa.emails) or _lista([cnpja.email])

    registro = RegistroConsolidado(
        cnpj=normalizar_cnpj(cnpj),
        razao_social=_preferir(empresa.razao_social, cnpja.razao_social),
        nome_fantasia=_preferir(empresa.nome_fantasia, cnpja.nome_fantasia),
        situacao=_preferir(empresa.situacao_cnpj, cnpja.situacao),
        porte=_preferir(empresa.porte, cnpja.porte),
        natureza_juridica=_preferir(empresa.natureza_juridica, cnpja.natureza_juridica),
        data_abertura=_preferir(empresa.fundacao, cnpja.data_abertura),
        capital_social=_preferir(empresa.capital_social, cnpja.capital_social),
        atividade_principal=_preferir(empresa.atividade_principal, cnpja.atividade_principal),
        inscricao_estadual=_preferir(empresa.inscricao_estadual, cnpja.inscricao_estadual),
        inscricao_suframa=cnpja.inscricao_suframa,
        endereco=partes,
        endereco_completo=endereco_completo,
        telefones=telefones,
        emails=emails,
        fonte_endereco=fonte,
        resposta_tess=resposta_tess,
        resposta_cnpja=consulta_cnpja.resposta if consulta_cnpja else None,
    )

    logger.debug(
        f"[PIPELINE] Registro consolidado {registro.cnpj}: endereço via {fonte or 'nenhuma fonte'}, "
        f"CNPJÁ {'presente' if consulta_cnpja else 'ausente'}"
    )
    return registro
