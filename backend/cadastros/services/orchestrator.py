"""
Orquestrador do pipeline de um CNPJ.

IDLE -> CONSULTANDO_SPC -> PROCESSANDO_TESS -> CONSULTANDO_CNPJA ->
PERSISTINDO -> CADASTRANDO_ATAK -> CONCLUIDO, com FALHOU a partir de
qualquer estado.

SPC, TESS e persistência são fatais. CNPJÁ e Atak não: o pipeline segue
sem a consulta do CNPJÁ e reporta o erro do Atak junto com o sucesso.
"""
import logging
import os
import time
from typing import Callable, Optional

from cadastros.core.config import Settings, settings as default_settings
from cadastros.schemas.pipeline import PipelineResult, PipelineState
from cadastros.schemas.registro import CnpjaConsulta
from cadastros.schemas.tess import TessResposta
from cadastros.services.atak_client import AtakClient
from cadastros.services.cache_store import CacheStore
from cadastros.services.cnpja_client import CnpjaClient
from cadastros.services.data_reconciler import reconciliar
from cadastros.services.persistence import PersistenceLayer
from cadastros.services.spc_bot import SpcRegistryAdapter
from cadastros.services.tess_client import TessClient
from cadastros.services.tess_parser import parse_resposta_tess
from cadastros.utils.cnpj import normalizar_cnpj

logger = logging.getLogger(__name__)

MENSAGEM_CACHE = "Resultado obtido do cache"


class Orchestrator:
    """Executa o pipeline completo para um CNPJ por vez"""

    def __init__(
        self,
        spc: SpcRegistryAdapter,
        tess: TessClient,
        cnpja: CnpjaClient,
        persistence: PersistenceLayer,
        cache: CacheStore,
        atak: Optional[AtakClient] = None,
        config: Optional[Settings] = None,
        atak_habilitado: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or default_settings
        self.spc = spc
        self.tess = tess
        self.cnpja = cnpja
        self.persistence = persistence
        self.cache = cache
        self.atak = atak
        self.atak_habilitado = self.config.ATAK_ENABLED if atak_habilitado is None else atak_habilitado
        self._clock = clock

        self.estado = PipelineState.IDLE
        self.is_processing = False
        self._arquivo_pdf: Optional[str] = None

    def _gravar_cache(self, cnpj: str, success: bool, error: Optional[str] = None):
        """Grava ou renova a entrada do cache com o desfecho da execução"""
        self.cache.set(
            cnpj,
            success=success,
            file_name=os.path.basename(self._arquivo_pdf) if self._arquivo_pdf else None,
            file_path=self._arquivo_pdf,
            error=error,
        )

    def _transicao(self, cnpj: str, estado: PipelineState):
        logger.info(f"[PIPELINE] {cnpj}: {self.estado.value} -> {estado.value}")
        self.estado = estado

    def _falhou(self, cnpj: str, inicio: float, error: str, **kwargs) -> PipelineResult:
        etapa = self.estado.value
        self._transicao(cnpj, PipelineState.FALHOU)
        tempo = round(self._clock() - inicio, 2)
        logger.error(f"[PIPELINE] {cnpj} falhou em {etapa}: {error} ({tempo}s)")
        return PipelineResult(
            cnpj=cnpj,
            success=False,
            estado=PipelineState.FALHOU,
            error=error,
            tempo_segundos=tempo,
            **kwargs,
        )

    @property
    def _atak_ativo(self) -> bool:
        return bool(self.atak_habilitado and self.atak is not None and self.atak.configurado)

    async def processar(self, cnpj: str) -> PipelineResult:
        """
        Processa um CNPJ de ponta a ponta.

        Returns:
            PipelineResult (falhas de adaptadores nunca viram exceção)

        Raises:
            PersistenceError: falha ao gravar no banco
        """
        cnpj = normalizar_cnpj(cnpj)

        if self.is_processing:
            logger.warning(f"[PIPELINE] Processamento já em andamento, CNPJ {cnpj} rejeitado")
            return PipelineResult(
                cnpj=cnpj,
                success=False,
                estado=self.estado,
                error="Processamento já em andamento",
            )

        self.is_processing = True
        self.estado = PipelineState.IDLE
        self._arquivo_pdf = None
        try:
            return await self._executar(cnpj)
        except Exception as e:
            etapa = self.estado.value
            self._transicao(cnpj, PipelineState.FALHOU)
            self._gravar_cache(cnpj, False, error=f"{etapa}: {e}")
            raise
        finally:
            self.is_processing = False

    async def _executar(self, cnpj: str) -> PipelineResult:
        inicio = self._clock()

        cacheado = self.cache.get(cnpj)
        if cacheado is not None:
            tempo = round(self._clock() - inicio, 2)
            logger.info(f"[CACHE] CNPJ {cnpj} consultado em {cacheado.get('consulted_at')}, usando cache")
            if not cacheado.get("success"):
                self.estado = PipelineState.FALHOU
                return PipelineResult(
                    cnpj=cnpj,
                    success=False,
                    estado=PipelineState.FALHOU,
                    from_cache=True,
                    mensagem=MENSAGEM_CACHE,
                    error=cacheado.get("error"),
                    arquivo_pdf=cacheado.get("file_path"),
                    tempo_segundos=tempo,
                )
            self.estado = PipelineState.CONCLUIDO
            return PipelineResult(
                cnpj=cnpj,
                success=True,
                estado=PipelineState.CONCLUIDO,
                from_cache=True,
                mensagem=MENSAGEM_CACHE,
                arquivo_pdf=cacheado.get("file_path"),
                tempo_segundos=tempo,
            )

        # 1. SPC
        self._transicao(cnpj, PipelineState.CONSULTANDO_SPC)
        spc = await self.spc.consultar(cnpj)
        if not spc.success:
            self._gravar_cache(cnpj, False, error=spc.error)
            return self._falhou(cnpj, inicio, spc.error, spc_consultas=1)

        arquivo_pdf = spc.data["file_path"]
        self._arquivo_pdf = arquivo_pdf

        # 2. TESS
        self._transicao(cnpj, PipelineState.PROCESSANDO_TESS)
        tess = await self.tess.processar_pdf(arquivo_pdf)
        if not tess.success:
            self._gravar_cache(cnpj, False, error=f"TESS: {tess.error}")
            return self._falhou(cnpj, inicio, tess.error, spc_consultas=1, arquivo_pdf=arquivo_pdf)

        resposta_tess: TessResposta = tess.data
        documento = parse_resposta_tess(resposta_tess.conteudo)
        logger.info(f"[PIPELINE] {cnpj}: extração TESS via {documento.metodo_extracao}")

        # 3. CNPJÁ (não fatal)
        self._transicao(cnpj, PipelineState.CONSULTANDO_CNPJA)
        cnpja = await self.cnpja.consultar(cnpj)
        consulta_cnpja: Optional[CnpjaConsulta] = cnpja.data if cnpja.success else None
        if not cnpja.success:
            logger.warning(f"[PIPELINE] {cnpj}: CNPJÁ indisponível, seguindo sem dados cadastrais: {cnpja.error}")

        registro = reconciliar(cnpj, documento, consulta_cnpja, resposta_tess.conteudo)
        cnpja_unidades = consulta_cnpja.unidades_cobradas if consulta_cnpja else cnpja.attempts

        # 4. Banco (PersistenceError sobe)
        self._transicao(cnpj, PipelineState.PERSISTINDO)
        ids = self.persistence.salvar(
            registro,
            documento,
            arquivo_pdf=arquivo_pdf,
            tess_file_id=resposta_tess.file_id,
            tess_creditos=resposta_tess.creditos,
            cnpja_unidades=cnpja_unidades,
        )
        # Só após a gravação no banco o CNPJ conta como processado
        self._gravar_cache(cnpj, True)

        resultado = PipelineResult(
            cnpj=cnpj,
            success=True,
            estado=PipelineState.CONCLUIDO,
            arquivo_pdf=arquivo_pdf,
            empresa_id=ids["empresa_id"],
            consulta_id=ids["consulta_id"],
            cnpja_disponivel=consulta_cnpja is not None,
            spc_consultas=1,
            tess_creditos=resposta_tess.creditos or 0,
            cnpja_unidades=cnpja_unidades,
        )

        # 5. Atak (não fatal)
        if self._atak_ativo:
            self._transicao(cnpj, PipelineState.CADASTRANDO_ATAK)
            atak = await self.atak.registrar_empresa(registro)
            self.persistence.salvar_resultado_atak(cnpj, atak)
            if atak.success:
                resultado.atak_cliente_id = atak.data.get("cliente_id")
                resultado.atak_ja_cadastrado = atak.data.get("ja_cadastrado")
                resultado.mensagem = atak.data.get("mensagem")
            else:
                logger.warning(f"[PIPELINE] {cnpj}: cadastro no Atak falhou: {atak.error}")
                resultado.atak_erro = atak.error
        elif self.atak_habilitado:
            logger.warning("[PIPELINE] Atak habilitado mas não configurado, etapa ignorada")

        self._transicao(cnpj, PipelineState.CONCLUIDO)
        resultado.tempo_segundos = round(self._clock() - inicio, 2)
        logger.info(f"[PIPELINE] {cnpj} concluído em {resultado.tempo_segundos}s")
        return resultado
