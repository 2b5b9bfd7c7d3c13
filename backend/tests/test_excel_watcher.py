"""
Testes do monitoramento da planilha de CNPJs
"""
import asyncio

import pandas as pd
from watchdog.events import FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from cadastros.core.exceptions import PersistenceError
from cadastros.schemas.pipeline import PipelineResult, PipelineState
from cadastros.services.excel_watcher import ExcelChangeHandler, ExcelWatcher

CNPJ = "17283362000130"
OUTRO_CNPJ = "11222333000181"


class FakeOrchestrator:
    def __init__(self, erros=None):
        self.erros = erros or {}
        self.processados = []

    async def processar(self, cnpj):
        self.processados.append(cnpj)
        if cnpj in self.erros:
            raise self.erros[cnpj]
        return PipelineResult(cnpj=cnpj, success=True, estado=PipelineState.CONCLUIDO)


class FakeObserver:
    def __init__(self):
        self.agendados = []
        self.iniciado = False
        self.parado = False

    def schedule(self, handler, path, recursive=False):
        self.agendados.append((handler, path, recursive))

    def start(self):
        self.iniciado = True

    def stop(self):
        self.parado = True

    def join(self, timeout=None):
        pass


def _planilha(caminho, cnpjs):
    pd.DataFrame({"CNPJ": cnpjs}).to_excel(caminho, index=False)
    return str(caminho)


def test_processa_apenas_cnpjs_novos(tmp_path, fake_sleep):
    caminho = _planilha(tmp_path / "clientes.xlsx", [CNPJ])
    orchestrator = FakeOrchestrator()
    watcher = ExcelWatcher(caminho, orchestrator, delay_seconds=3.0, sleep=fake_sleep)

    primeira = asyncio.run(watcher.processar_arquivo())
    assert [r.cnpj for r in primeira] == [CNPJ]

    # nova linha adicionada na planilha
    _planilha(tmp_path / "clientes.xlsx", [CNPJ, OUTRO_CNPJ])
    segunda = asyncio.run(watcher.processar_arquivo())

    assert [r.cnpj for r in segunda] == [OUTRO_CNPJ]
    assert orchestrator.processados == [CNPJ, OUTRO_CNPJ]
    assert watcher.stats() == {"total_processados": 2, "cnpjs": sorted([CNPJ, OUTRO_CNPJ])}

    # sem novidades, nada é processado
    assert asyncio.run(watcher.processar_arquivo()) == []
    assert fake_sleep.calls == []


def test_pausa_entre_cnpjs(tmp_path, fake_sleep):
    caminho = _planilha(tmp_path / "clientes.xlsx", [CNPJ, OUTRO_CNPJ])
    watcher = ExcelWatcher(caminho, FakeOrchestrator(), delay_seconds=3.0, sleep=fake_sleep)

    asyncio.run(watcher.processar_arquivo())

    assert fake_sleep.calls == [3.0]


def test_erro_em_um_cnpj_nao_interrompe_e_nao_repete(tmp_path, fake_sleep):
    caminho = _planilha(tmp_path / "clientes.xlsx", [CNPJ, OUTRO_CNPJ])
    orchestrator = FakeOrchestrator(erros={CNPJ: PersistenceError("Falha ao gravar empresa")})
    watcher = ExcelWatcher(caminho, orchestrator, sleep=fake_sleep)

    resultados = asyncio.run(watcher.processar_arquivo())

    assert not resultados[0].success
    assert resultados[0].estado == PipelineState.FALHOU
    assert "Falha ao gravar empresa" in resultados[0].error
    assert resultados[1].success

    asyncio.run(watcher.processar_arquivo())
    assert orchestrator.processados == [CNPJ, OUTRO_CNPJ]


def test_planilha_ilegivel_nao_levanta(tmp_path, fake_sleep):
    watcher = ExcelWatcher(str(tmp_path / "nao_existe.xlsx"), FakeOrchestrator(), sleep=fake_sleep)

    assert asyncio.run(watcher.processar_arquivo()) == []
    assert not watcher.is_processing


def test_handler_reage_apenas_a_planilha(tmp_path):
    caminho = str(tmp_path / "clientes.xlsx")
    chamadas = []
    handler = ExcelChangeHandler(caminho, lambda: chamadas.append(1))

    handler.dispatch(FileModifiedEvent(str(tmp_path / "outro.xlsx")))
    handler.dispatch(FileCreatedEvent(str(tmp_path / "~$clientes.xlsx")))
    assert chamadas == []

    handler.dispatch(FileModifiedEvent(caminho))
    handler.dispatch(FileCreatedEvent(caminho))
    # gravação do Excel: arquivo temporário renomeado para o destino
    handler.dispatch(FileMovedEvent(str(tmp_path / "ABC123.tmp"), caminho))
    assert len(chamadas) == 3


def test_executar_processa_arquivo_existente_e_encerra_observador(tmp_path, fake_sleep):
    caminho = _planilha(tmp_path / "clientes.xlsx", [CNPJ])
    orchestrator = FakeOrchestrator()
    observer = FakeObserver()
    watcher = ExcelWatcher(caminho, orchestrator, sleep=fake_sleep, observer_factory=lambda: observer)

    async def executar():
        parar = asyncio.Event()
        parar.set()
        await watcher.executar(parar)

    asyncio.run(executar())

    assert orchestrator.processados == [CNPJ]
    assert observer.iniciado and observer.parado
    handler, diretorio, recursivo = observer.agendados[0]
    assert diretorio == str(tmp_path)
    assert recursivo is False
    assert isinstance(handler, ExcelChangeHandler)


def test_alteracao_na_planilha_dispara_nova_rodada(tmp_path, fake_sleep):
    caminho = _planilha(tmp_path / "clientes.xlsx", [CNPJ])
    orchestrator = FakeOrchestrator()
    observer = FakeObserver()
    watcher = ExcelWatcher(
        caminho, orchestrator, debounce_seconds=0.5, sleep=fake_sleep, observer_factory=lambda: observer
    )

    async def executar():
        parar = asyncio.Event()

        async def editar_planilha():
            while not orchestrator.processados:
                await asyncio.sleep(0)
            _planilha(tmp_path / "clientes.xlsx", [CNPJ, OUTRO_CNPJ])
            handler = observer.agendados[0][0]
            # o observador do watchdog notifica a partir de outra thread
            await asyncio.get_running_loop().run_in_executor(
                None, handler.dispatch, FileModifiedEvent(caminho)
            )
            while len(orchestrator.processados) < 2:
                await asyncio.sleep(0.01)
            parar.set()

        await asyncio.gather(watcher.executar(parar), editar_planilha())

    asyncio.run(executar())

    assert orchestrator.processados == [CNPJ, OUTRO_CNPJ]
    assert fake_sleep.calls == [0.5]
    assert observer.parado
