"""
Cliente da TESS (agente de IA para extração de documentos).

Fluxo: upload do PDF -> disparo do processamento -> polling do status ->
execução do agente com wait_execution -> validação do conteúdo.
"""
import asyncio
import json
import logging
import os
import re
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import httpx

from cadastros.core.config import Settings, settings as default_settings
from cadastros.core.exceptions import TransportError, ValidationError
from cadastros.schemas.stage import StageResult
from cadastros.schemas.tess import TessResposta
from cadastros.services.external_fetcher import ExternalFetcher, RetryPolicy, raise_for_status

logger = logging.getLogger(__name__)

PROMPT_PADRAO = "Processe o documento anexado."

# Respostas em que o agente pede o PDF de novo em vez de extrair os dados
REENVIO_PDF_REGEX = re.compile(
    r"enviar\s+o\s+arquivo\s+pdf|enviar\s+o\s+pdf|enviar\s+arquivo|send\s+the\s+pdf|attach\s+the\s+pdf|upload\s+the\s+pdf",
    re.IGNORECASE,
)

STATUS_CONCLUIDO = {"processed", "completed"}


def extrair_conteudo(resposta: Dict[str, Any]) -> Tuple[str, float]:
    """
    Extrai o conteúdo útil da primeira resposta do agente.

    Usa `output` quando não está em branco; senão o JSON de `answers` se tiver
    mais de 50 caracteres.

    Returns:
        (conteudo, creditos)

    Raises:
        ValidationError: resposta vazia ou pedido de reenvio do PDF
    """
    respostas = resposta.get("responses") or []
    if not respostas:
        raise ValidationError("Resposta inválida do processamento TESS (sem responses)", "TESS")

    primeira = respostas[0] or {}
    creditos = float(primeira.get("credits") or 0)

    conteudo = primeira.get("output") or ""
    if not conteudo.strip():
        answers = primeira.get("answers")
        answers_json = json.dumps(answers, ensure_ascii=False) if answers else ""
        if len(answers_json) > 50:
            conteudo = answers_json
        else:
            raise ValidationError("TESS retornou resposta vazia", "TESS")

    if REENVIO_PDF_REGEX.search(conteudo):
        raise ValidationError("TESS solicitou reenvio do PDF", "TESS")

    return conteudo, creditos


class TessClient:
    """Cliente HTTP da API TESS"""

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=asyncio.sleep,
        poll_interval: float = 2.0,
        max_wait: float = 120.0,
    ):
        config = config or default_settings
        self.api_key = config.TESS_API_KEY or ""
        self.base_url = config.TESS_BASE_URL.rstrip("/")
        self.agent_id = config.TESS_AGENT_ID
        self.model = config.TESS_MODEL
        self.temperature = config.TESS_TEMPERATURE
        self.prompt = config.TESS_PROMPT or PROMPT_PADRAO
        self.output_path = config.TESS_OUTPUT_PATH
        self.poll_interval = poll_interval
        self.max_wait = max_wait

        self._transport = transport
        self._sleep = sleep
        self.fetcher = ExternalFetcher("TESS", RetryPolicy(), sleep=sleep)
        self.fetcher_execucao = ExternalFetcher("TESS", RetryPolicy(max_attempts=4, backoff_ms=1000), sleep=sleep)
        self.fetcher_polling = ExternalFetcher("TESS", RetryPolicy(max_attempts=1), sleep=sleep)

    def _client(self, timeout: float = 120.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=timeout,
            transport=self._transport,
        )

    async def upload_arquivo(self, caminho: str) -> str:
        """Envia o PDF e devolve o file id"""
        if not os.path.exists(caminho):
            raise ValidationError(f"Arquivo não encontrado: {caminho}", "TESS")

        with open(caminho, "rb") as f:
            conteudo = f.read()

        async with self._client() as client:
            response = await client.post(
                "/api/files",
                files={"file": (os.path.basename(caminho), conteudo, "application/pdf")},
            )
        raise_for_status(response, "TESS")

        data = response.json()
        if not data or not data.get("id"):
            raise ValidationError(f"Resposta inválida do upload TESS: {response.text[:300]}", "TESS")

        file_id = str(data["id"])
        logger.info(f"[TESS] Upload realizado. File ID: {file_id}")
        return file_id

    async def disparar_processamento(self, file_id: str) -> str:
        async with self._client(timeout=30.0) as client:
            response = await client.post(f"/api/files/{file_id}/process")
        raise_for_status(response, "TESS")
        if response.status_code not in (200, 202):
            raise TransportError(
                f"Status inesperado ao disparar processamento: {response.status_code}",
                "TESS",
                status_code=response.status_code,
            )
        logger.info(f"[TESS] Processamento do arquivo {file_id} disparado")
        return file_id

    async def aguardar_processamento(self, file_id: str) -> str:
        """
        Consulta o status do arquivo até processed/completed.
        Erros de rede durante o polling não interrompem a espera.
        """
        verificacoes = max(1, int(self.max_wait / self.poll_interval))

        async with self._client(timeout=30.0) as client:
            for _ in range(verificacoes):
                try:
                    response = await client.get(f"/api/files/{file_id}")
                    raise_for_status(response, "TESS")
                    status = (response.json() or {}).get("status")
                except (httpx.HTTPError, TransportError) as e:
                    logger.warning(f"[TESS] Erro ao verificar status do arquivo {file_id}: {e}")
                    status = None

                logger.debug(f"[TESS] Status do arquivo {file_id}: {status}")
                if status in STATUS_CONCLUIDO:
                    logger.info(f"[TESS] Arquivo {file_id} processado")
                    return file_id
                if status == "failed":
                    raise ValidationError("Falha no processamento do arquivo na TESS", "TESS")

                await self._sleep(self.poll_interval)

        raise TransportError("Timeout aguardando processamento do arquivo", "TESS")

    async def executar_agente(self, file_id: str) -> TessResposta:
        """Executa o agente sobre o arquivo e valida o conteúdo devolvido"""
        payload = {
            "file_ids": [file_id],
            "model": self.model,
            "temperature": str(self.temperature),
            "tools": "no-tools",
            "wait_execution": True,
            "messages": [{"role": "user", "content": self.prompt}],
        }

        async with self._client() as client:
            response = await client.post(
                f"/api/agents/{self.agent_id}/execute",
                params={"wait_execution": "true"},
                json=payload,
            )
        raise_for_status(response, "TESS")

        conteudo, creditos = extrair_conteudo(response.json())
        logger.info(f"[TESS] Agente executado ({len(conteudo)} caracteres, {creditos} créditos)")
        return TessResposta(file_id=file_id, conteudo=conteudo, creditos=creditos)

    def salvar_resposta(self, caminho_pdf: str, resposta: TessResposta) -> str:
        """Grava <pdf>_tess_response.txt com cabeçalho e conteúdo"""
        os.makedirs(self.output_path, exist_ok=True)
        nome_base = os.path.splitext(os.path.basename(caminho_pdf))[0]
        caminho = os.path.join(self.output_path, f"{nome_base}_tess_response.txt")

        with open(caminho, "w", encoding="utf-8") as f:
            f.write(f"Data: {datetime.now().isoformat()}\n")
            f.write(f"Arquivo: {os.path.basename(caminho_pdf)}\n")
            f.write(f"File ID: {resposta.file_id}\n")
            f.write(f"Créditos utilizados: {resposta.creditos}\n\n")
            f.write("=== Conteúdo Processado ===\n")
            f.write(resposta.conteudo)

        logger.info(f"[TESS] Resposta salva em {caminho}")
        return caminho

    async def processar_pdf(self, caminho_pdf: str) -> StageResult:
        """
        Executa o fluxo completo da TESS para um PDF.

        Returns:
            StageResult com TessResposta em data (créditos = unidades cobradas)
        """
        upload = await self.fetcher.call(lambda: self.upload_arquivo(caminho_pdf), "POST /api/files")
        if not upload.success:
            return upload
        file_id = upload.data

        processamento = await self.fetcher.call(
            lambda: self.disparar_processamento(file_id), f"POST /api/files/{file_id}/process"
        )
        if not processamento.success:
            return processamento

        espera = await self.fetcher_polling.call(
            lambda: self.aguardar_processamento(file_id), f"GET /api/files/{file_id}"
        )
        if not espera.success:
            return espera

        execucao = await self.fetcher_execucao.call(
            lambda: self.executar_agente(file_id), f"POST /api/agents/{self.agent_id}/execute"
        )
        if not execucao.success:
            return execucao

        resposta: TessResposta = execucao.data
        try:
            arquivo = self.salvar_resposta(caminho_pdf, resposta)
        except OSError as e:
            logger.warning(f"[TESS] Não foi possível salvar a resposta em disco: {e}")
            arquivo = None

        resposta = resposta.model_copy(update={"arquivo_saida": arquivo})
        return StageResult.ok(resposta, attempts=execucao.attempts)
