"""
Execução do pipeline em lote, um CNPJ por vez.
"""
import asyncio
import json
import logging
import os
import time
from datetime import datetime
from typing import Iterable, Optional

from cadastros.schemas.pipeline import BatchItem, BatchReport
from cadastros.services.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


class BatchRunner:
    """
    Processa uma lista de CNPJs sequencialmente com pausa entre itens.
    Exceções de um item (ex.: PersistenceError) marcam o item como falho e o lote continua.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        delay_seconds: float = 2.0,
        reports_path: Optional[str] = None,
        sleep=asyncio.sleep,
    ):
        self.orchestrator = orchestrator
        self.delay_seconds = delay_seconds
        self.reports_path = reports_path
        self._sleep = sleep

    async def executar(self, cnpjs: Iterable[str]) -> BatchReport:
        lista = list(cnpjs)
        inicio = time.monotonic()
        relatorio = BatchReport(total=len(lista), sucessos=0, falhas=0)
        tess_creditos = 0.0
        cnpja_unidades = 0
        spc_consultas = 0

        logger.info(f"[BATCH] Iniciando lote com {len(lista)} CNPJs")

        for indice, cnpj in enumerate(lista, start=1):
            logger.info(f"[BATCH] ({indice}/{len(lista)}) CNPJ {cnpj}")
            inicio_item = time.monotonic()

            try:
                resultado = await self.orchestrator.processar(cnpj)
                item = BatchItem(
                    cnpj=resultado.cnpj,
                    success=resultado.success,
                    mensagem=resultado.mensagem,
                    error=resultado.error or resultado.atak_erro,
                    tempo_segundos=resultado.tempo_segundos,
                )
                tess_creditos += resultado.tess_creditos
                cnpja_unidades += resultado.cnpja_unidades
                spc_consultas += resultado.spc_consultas
            except Exception as e:
                logger.exception(f"[BATCH] Erro inesperado no CNPJ {cnpj}: {e}")
                item = BatchItem(
                    cnpj=cnpj,
                    success=False,
                    error=str(e) or e.__class__.__name__,
                    tempo_segundos=round(time.monotonic() - inicio_item, 2),
                )

            relatorio.itens.append(item)
            if item.success:
                relatorio.sucessos += 1
            else:
                relatorio.falhas += 1

            if indice < len(lista) and self.delay_seconds > 0:
                await self._sleep(self.delay_seconds)

        relatorio.tempo_segundos = round(time.monotonic() - inicio, 2)
        relatorio.custos = {
            "spc_consultas": spc_consultas,
            "tess_creditos": tess_creditos,
            "cnpja_unidades": cnpja_unidades,
        }

        logger.info(
            f"[BATCH] Lote concluído: {relatorio.sucessos} sucessos, {relatorio.falhas} falhas "
            f"em {relatorio.tempo_segundos}s"
        )

        if self.reports_path:
            relatorio.arquivo_relatorio = self.salvar_relatorio(relatorio)
        return relatorio

    def salvar_relatorio(self, relatorio: BatchReport) -> Optional[str]:
        """Grava o resumo do lote em JSON. Falha de disco só gera log."""
        try:
            os.makedirs(self.reports_path, exist_ok=True)
            caminho = os.path.join(
                self.reports_path, f"lote_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
            )
            with open(caminho, "w", encoding="utf-8") as f:
                json.dump(relatorio.model_dump(mode="json"), f, ensure_ascii=False, indent=2)
        except OSError as e:
            logger.error(f"[BATCH] Não foi possível salvar o relatório: {e}")
            return None

        logger.info(f"[BATCH] Relatório salvo em {caminho}")
        return caminho
