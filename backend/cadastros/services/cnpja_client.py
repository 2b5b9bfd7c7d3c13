"""
Cliente da API CNPJÁ (cadastro de empresas).

Uma consulta padrão por CNPJ e, só para zonas elegíveis, uma segunda
consulta com suframa=true. Cada requisição emitida conta uma unidade.
"""
import asyncio
import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from cadastros.core.config import Settings, settings as default_settings
from cadastros.core.exceptions import AuthError, ValidationError
from cadastros.schemas.registro import CnpjaConsulta, CnpjaDados, EnderecoPartes
from cadastros.schemas.stage import StageResult
from cadastros.services.external_fetcher import ExternalFetcher, RetryPolicy, raise_for_status
from cadastros.utils.cnpj import normalizar_cnpj

logger = logging.getLogger(__name__)

# Estados da Amazônia Ocidental (todos os municípios)
UFS_SUFRAMA = {"AM", "AC", "RO", "RR"}
# No Amapá, apenas a ALC de Macapá/Santana
CIDADES_SUFRAMA_AP = ("macapá", "macapa", "santana")

ENDERECO_INDISPONIVEL = "Endereço não disponível"


def elegivel_suframa(uf: Optional[str], cidade: Optional[str] = None) -> bool:
    """Indica se a empresa está em zona atendida pela SUFRAMA"""
    if not uf:
        return False
    uf = uf.strip().upper()
    if uf in UFS_SUFRAMA:
        return True
    if uf == "AP" and cidade:
        cidade_normalizada = cidade.strip().lower()
        return any(nome in cidade_normalizada for nome in CIDADES_SUFRAMA_AP)
    return False


def _texto(obj: Any, campo: str = "text") -> Optional[str]:
    if isinstance(obj, dict):
        return obj.get(campo) or None
    return None


def extrair_dados(resposta: Dict[str, Any]) -> CnpjaDados:
    """Projeta a resposta do CNPJÁ nos campos usados pelo merge e pelo banco"""
    endereco = resposta.get("address") or {}
    empresa = resposta.get("company") or {}

    inscricao_estadual = next(
        (reg.get("number") for reg in resposta.get("registrations") or [] if reg.get("enabled") is True),
        None,
    )

    partes = EnderecoPartes(
        logradouro=endereco.get("street"),
        numero=str(endereco["number"]) if endereco.get("number") else None,
        complemento=endereco.get("details"),
        bairro=endereco.get("district"),
        cidade=endereco.get("city"),
        estado=endereco.get("state"),
        cep=endereco.get("zip"),
        latitude=endereco.get("latitude"),
        longitude=endereco.get("longitude"),
    )
    componentes = [
        partes.logradouro, partes.numero, partes.complemento, partes.bairro,
        partes.cidade, partes.estado, partes.cep,
    ]
    endereco_completo = ", ".join(str(c) for c in componentes if c) or ENDERECO_INDISPONIVEL

    telefones = resposta.get("phones") or []
    telefone = f"({telefones[0].get('area')}) {telefones[0].get('number')}" if telefones else None

    emails = resposta.get("emails") or []
    email = emails[0].get("address") if emails else None

    suframa = resposta.get("suframa") or []
    inscricao_suframa = suframa[0].get("number") if suframa else None

    return CnpjaDados(
        cnpj=normalizar_cnpj(resposta.get("taxId") or ""),
        razao_social=empresa.get("name"),
        nome_fantasia=resposta.get("alias"),
        situacao=_texto(resposta.get("status")),
        data_abertura=resposta.get("founded"),
        natureza_juridica=_texto(empresa.get("nature")),
        porte=_texto(empresa.get("size")),
        capital_social=empresa.get("equity"),
        atividade_principal=_texto(resposta.get("mainActivity")),
        inscricao_estadual=inscricao_estadual,
        inscricao_suframa=inscricao_suframa,
        telefone=telefone,
        email=email,
        endereco=partes,
        endereco_completo=endereco_completo,
    )


def validar_dados(resposta: Dict[str, Any]) -> List[str]:
    """Lista os campos obrigatórios ausentes (vazia = dados suficientes)"""
    endereco = resposta.get("address") or {}
    faltando = []

    if not (resposta.get("company") or {}).get("name"):
        faltando.append("razão social")
    if not endereco.get("city"):
        faltando.append("cidade")
    if not endereco.get("state"):
        faltando.append("estado")
    if not resposta.get("registrations"):
        faltando.append("inscrição estadual")
    if not endereco.get("latitude") or not endereco.get("longitude"):
        faltando.append("coordenadas geográficas")

    return faltando


class CnpjaClient:
    """Cliente HTTP da API CNPJÁ"""

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=asyncio.sleep,
    ):
        config = config or default_settings
        self.api_key = config.CNPJA_API_KEY or ""
        self.base_url = config.CNPJA_BASE_URL.rstrip("/")
        self.output_path = config.CNPJA_OUTPUT_PATH
        self._transport = transport
        self.fetcher = ExternalFetcher("CNPJA", RetryPolicy(max_attempts=3), sleep=sleep)

    async def _buscar(self, cnpj: str, suframa: bool = False) -> Dict[str, Any]:
        params = {
            "registrations": "BR",
            "geocoding": "true",
            "strategy": "CACHE_IF_ERROR",
            "maxAge": "30",
        }
        if suframa:
            params["suframa"] = "true"

        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": self.api_key},
            timeout=30.0,
            transport=self._transport,
        ) as client:
            response = await client.get(f"/office/{cnpj}", params=params)

        if response.status_code == 401:
            raise AuthError("Chave de API inválida ou expirada", "CNPJA")
        raise_for_status(response, "CNPJA", not_found_message="CNPJ não encontrado no CNPJÁ")
        return response.json()

    def salvar_resposta(self, cnpj: str, resposta: Dict[str, Any]) -> str:
        """Grava cnpja_{cnpj}_{timestamp}.json"""
        os.makedirs(self.output_path, exist_ok=True)
        agora = datetime.now()
        caminho = os.path.join(self.output_path, f"cnpja_{cnpj}_{agora.strftime('%Y%m%d_%H%M%S')}.json")
        with open(caminho, "w", encoding="utf-8") as f:
            json.dump(
                {"cnpj": cnpj, "timestamp": agora.isoformat(), "response": resposta},
                f,
                ensure_ascii=False,
                indent=2,
            )
        return caminho

    def _salvar_sem_falhar(self, cnpj: str, resposta: Dict[str, Any]) -> Optional[str]:
        try:
            return self.salvar_resposta(cnpj, resposta)
        except OSError as e:
            logger.warning(f"[CNPJA] Não foi possível salvar a resposta do CNPJ {cnpj}: {e}")
            return None

    async def consultar(self, cnpj: str) -> StageResult:
        """
        Consulta o CNPJ e, se elegível, refaz com SUFRAMA.

        Returns:
            StageResult com CnpjaConsulta em data
        """
        cnpj_limpo = normalizar_cnpj(cnpj)
        if len(cnpj_limpo) != 14:
            return StageResult.fail(
                str(ValidationError(f"CNPJ inválido: {cnpj}. Deve conter 14 dígitos.", "CNPJA")),
                attempts=0,
            )

        logger.info(f"[CNPJA] Consultando CNPJ {cnpj_limpo}")
        resultado = await self.fetcher.call(lambda: self._buscar(cnpj_limpo), f"GET /office/{cnpj_limpo}")
        if not resultado.success:
            return resultado

        resposta = resultado.data
        unidades = 1
        arquivo = self._salvar_sem_falhar(cnpj_limpo, resposta)
        suframa_consultado = False

        endereco = resposta.get("address") or {}
        if elegivel_suframa(endereco.get("state"), endereco.get("city")):
            logger.info(f"[CNPJA] {endereco.get('city')}/{endereco.get('state')} elegível para SUFRAMA")
            unidades += 1
            com_suframa = await self.fetcher.call(
                lambda: self._buscar(cnpj_limpo, suframa=True), f"GET /office/{cnpj_limpo}?suframa=true"
            )
            if com_suframa.success:
                resposta = com_suframa.data
                suframa_consultado = True
                arquivo = self._salvar_sem_falhar(cnpj_limpo, resposta) or arquivo
            else:
                logger.warning(f"[CNPJA] Consulta SUFRAMA falhou, mantendo resposta padrão: {com_suframa.error}")

        faltando = validar_dados(resposta)
        if faltando:
            logger.warning(f"[CNPJA] Campos ausentes para {cnpj_limpo}: {', '.join(faltando)}")

        dados = extrair_dados(resposta)
        if not dados.cnpj:
            dados = dados.model_copy(update={"cnpj": cnpj_limpo})

        consulta = CnpjaConsulta(
            cnpj=cnpj_limpo,
            resposta=resposta,
            dados=dados,
            suframa_consultado=suframa_consultado,
            unidades_cobradas=unidades,
            arquivo_saida=arquivo,
        )
        return StageResult.ok(consulta, attempts=resultado.attempts)
