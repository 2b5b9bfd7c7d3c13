"""
Monitoramento da planilha de CNPJs.

Observa o arquivo Excel com watchdog e, a cada gravação, processa apenas os
CNPJs que ainda não foram processados nesta sessão. CNPJs já consultados
dentro do TTL são resolvidos pelo cache do orquestrador, sem chamadas externas.
"""
import asyncio
import logging
import os
from typing import Callable, List, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from cadastros.schemas.pipeline import PipelineResult, PipelineState
from cadastros.services.excel_reader import ExcelReader
from cadastros.services.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


class ExcelChangeHandler(FileSystemEventHandler):
    """Dispara o callback quando a planilha observada é criada, alterada ou substituída"""

    def __init__(self, path: str, on_change: Callable[[], None]):
        super().__init__()
        self.path = os.path.abspath(path)
        self.on_change = on_change

    def _e_a_planilha(self, caminho) -> bool:
        if not caminho:
            return False
        if isinstance(caminho, bytes):
            caminho = os.fsdecode(caminho)
        return os.path.abspath(caminho) == self.path

    def on_any_event(self, event: FileSystemEvent):
        if event.is_directory or event.event_type not in ("created", "modified", "moved"):
            return
        # Excel grava em arquivo temporário e renomeia para o destino
        if self._e_a_planilha(event.src_path) or self._e_a_planilha(getattr(event, "dest_path", None)):
            logger.debug(f"[WATCH] {event.event_type}: {event.src_path}")
            self.on_change()


class ExcelWatcher:
    """
    Processa novos CNPJs conforme aparecem na planilha.

    Uso:
        watcher = ExcelWatcher("clientes.xlsx", orchestrator)
        await watcher.executar()
    """

    def __init__(
        self,
        path: str,
        orchestrator: Orchestrator,
        sheet: Optional[str] = None,
        column: Optional[str] = None,
        delay_seconds: float = 3.0,
        debounce_seconds: float = 1.0,
        sleep=asyncio.sleep,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.path = path
        self.orchestrator = orchestrator
        self.sheet = sheet
        self.column = column
        self.delay_seconds = delay_seconds
        self.debounce_seconds = debounce_seconds
        self._sleep = sleep
        self._observer_factory = observer_factory

        self.processados: Set[str] = set()
        self.is_processing = False
        self._alterado: Optional[asyncio.Event] = None

    def stats(self) -> dict:
        return {"total_processados": len(self.processados), "cnpjs": sorted(self.processados)}

    async def processar_arquivo(self) -> List[PipelineResult]:
        """
        Lê a planilha e processa os CNPJs ainda não vistos nesta sessão.

        Falhas de um CNPJ não interrompem os demais; todo CNPJ tentado entra em
        `processados`, com sucesso ou não, e só volta a rodar em outra sessão.
        """
        if self.is_processing:
            logger.info("[WATCH] Processamento em andamento, alteração será tratada em seguida")
            return []

        self.is_processing = True
        try:
            try:
                cnpjs = ExcelReader(self.path, sheet=self.sheet, column=self.column).read()
            except ValueError as e:
                logger.error(f"[WATCH] Não foi possível ler {self.path}: {e}")
                return []

            novos = [cnpj for cnpj in cnpjs if cnpj not in self.processados]
            if not novos:
                logger.info("[WATCH] Nenhum CNPJ novo na planilha")
                return []

            logger.info(f"[WATCH] {len(novos)} CNPJs novos para processar")
            resultados = []
            for indice, cnpj in enumerate(novos, start=1):
                logger.info(f"[WATCH] ({indice}/{len(novos)}) CNPJ {cnpj}")
                try:
                    resultado = await self.orchestrator.processar(cnpj)
                except Exception as e:
                    logger.exception(f"[WATCH] Erro inesperado no CNPJ {cnpj}: {e}")
                    resultado = PipelineResult(
                        cnpj=cnpj,
                        success=False,
                        estado=PipelineState.FALHOU,
                        error=str(e) or e.__class__.__name__,
                    )

                self.processados.add(cnpj)
                resultados.append(resultado)

                if indice < len(novos) and self.delay_seconds > 0:
                    await self._sleep(self.delay_seconds)

            sucessos = sum(1 for r in resultados if r.success)
            logger.info(
                f"[WATCH] Rodada concluída: {sucessos}/{len(resultados)} com sucesso. "
                f"Total na sessão: {len(self.processados)}"
            )
            return resultados
        finally:
            self.is_processing = False

    async def executar(self, parar: Optional[asyncio.Event] = None):
        """
        Observa a planilha até `parar` ser sinalizado (ou Ctrl+C).

        A planilha existente é processada logo no início.
        """
        parar = parar or asyncio.Event()
        loop = asyncio.get_running_loop()
        self._alterado = asyncio.Event()

        handler = ExcelChangeHandler(self.path, lambda: loop.call_soon_threadsafe(self._alterado.set))
        diretorio = os.path.dirname(os.path.abspath(self.path))
        observer = self._observer_factory()
        observer.schedule(handler, diretorio, recursive=False)
        observer.start()
        logger.info(f"[WATCH] Monitorando {self.path}")

        try:
            if os.path.exists(self.path):
                await self.processar_arquivo()

            while not parar.is_set():
                try:
                    await asyncio.wait_for(self._alterado.wait(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue

                # uma gravação do Excel gera vários eventos seguidos
                await self._sleep(self.debounce_seconds)
                self._alterado.clear()
                logger.info(f"[WATCH] Planilha alterada: {self.path}")
                await self.processar_arquivo()
        finally:
            observer.stop()
            observer.join()
            logger.info(f"[WATCH] Monitoramento encerrado. {len(self.processados)} CNPJs processados")
