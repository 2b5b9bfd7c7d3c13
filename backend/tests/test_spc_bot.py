"""
Testes do robô SPC sem navegador
"""
import asyncio

import pytest

from cadastros.core.exceptions import CadastroError
from cadastros.services.spc_bot import SpcBot, SpcRegistryAdapter
from cadastros.services import spc_selectors as sel
from conftest import make_settings

CNPJ = "17283362000130"


class FakeBot:
    def __init__(self, resultado=None, erro=None):
        self.resultado = resultado
        self.erro = erro
        self.aberto = False
        self.fechado = False
        self.consultas = []

    async def __aenter__(self):
        self.aberto = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.fechado = True

    async def executar_consulta(self, cnpj):
        self.consultas.append(cnpj)
        if self.erro:
            raise self.erro
        return self.resultado


def test_adaptador_sucesso():
    bot = FakeBot(resultado={"file_path": "downloads/a.pdf", "file_name": "a.pdf", "cnpj_invalido": None})
    adaptador = SpcRegistryAdapter(make_settings(), bot_factory=lambda: bot)

    result = asyncio.run(adaptador.consultar(CNPJ))

    assert result.success
    assert result.data["file_name"] == "a.pdf"
    assert bot.consultas == [CNPJ]
    assert bot.fechado


def test_adaptador_falha_sem_repetir():
    bots = []

    def factory():
        bot = FakeBot(erro=CadastroError("Falha na primeira etapa do login (operador e senha)", "SPC"))
        bots.append(bot)
        return bot

    result = asyncio.run(SpcRegistryAdapter(make_settings(), bot_factory=factory).consultar(CNPJ))

    assert not result.success
    assert "Falha na primeira etapa do login" in result.error
    assert len(bots) == 1
    # navegador fechado mesmo com erro
    assert bots[0].fechado


class TestGerarPdf:
    def setup_method(self):
        self.chamadas = []

    def _bot(self, tmp_path, estrategias):
        bot = SpcBot(make_settings(DOWNLOAD_PATH=str(tmp_path)))
        bot._estrategias_pdf = lambda: estrategias
        return bot

    def _falha(self, nome):
        async def estrategia(cnpj):
            self.chamadas.append(nome)
            raise RuntimeError(f"{nome} indisponível")
        return estrategia

    def _sucesso(self, nome, caminho):
        async def estrategia(cnpj):
            self.chamadas.append(nome)
            caminho.write_bytes(b"%PDF-1.4")
            return str(caminho)
        return estrategia

    def test_cascata_ate_a_terceira_estrategia(self, tmp_path):
        destino = tmp_path / "consulta.pdf"
        bot = self._bot(tmp_path, [
            ("impressão nativa", self._falha("nativa")),
            ("atalho de teclado", self._falha("atalho")),
            ("botão imprimir", self._sucesso("botao", destino)),
        ])

        assert asyncio.run(bot.gerar_pdf(CNPJ)) == str(destino)
        assert self.chamadas == ["nativa", "atalho", "botao"]

    def test_para_na_primeira_que_funciona(self, tmp_path):
        destino = tmp_path / "consulta.pdf"
        bot = self._bot(tmp_path, [
            ("impressão nativa", self._sucesso("nativa", destino)),
            ("atalho de teclado", self._falha("atalho")),
        ])

        asyncio.run(bot.gerar_pdf(CNPJ))
        assert self.chamadas == ["nativa"]

    def test_todas_falham(self, tmp_path):
        async def sem_arquivo(cnpj):
            return str(tmp_path / "nao_gerado.pdf")

        bot = self._bot(tmp_path, [
            ("impressão nativa", self._falha("nativa")),
            ("botão imprimir", sem_arquivo),
        ])

        with pytest.raises(CadastroError, match="Falha ao baixar PDF") as exc:
            asyncio.run(bot.gerar_pdf(CNPJ))
        assert "arquivo não gerado" in str(exc.value)


class FakeDialogo:
    async def text_content(self):
        return "  CNPJ inválido. Verifique o número digitado.  "

    async def click(self):
        pass


class FakePage:
    def __init__(self, elementos):
        self.elementos = elementos

    async def wait_for_selector(self, seletor, state="visible", timeout=3000):
        if seletor in self.elementos:
            return self.elementos[seletor]
        raise TimeoutError(seletor)


def _formatado(seletor):
    return f"xpath={seletor}" if seletor.startswith("//") else seletor


def test_dialogo_de_cnpj_invalido(tmp_path):
    bot = SpcBot(make_settings(DOWNLOAD_PATH=str(tmp_path)))
    bot.page = FakePage({_formatado(sel.CNPJ_INVALIDO[0]): FakeDialogo()})

    assert asyncio.run(bot.verificar_cnpj_invalido(CNPJ)) == "CNPJ inválido. Verifique o número digitado."


def test_sem_dialogo_de_cnpj_invalido(tmp_path):
    bot = SpcBot(make_settings(DOWNLOAD_PATH=str(tmp_path)))
    bot.page = FakePage({})
    assert asyncio.run(bot.verificar_cnpj_invalido(CNPJ)) is None


class FakeBrowser:
    def __init__(self, erro_contexto=None):
        self.erro_contexto = erro_contexto
        self.fechado = False

    async def new_context(self, **kwargs):
        raise self.erro_contexto

    async def close(self):
        self.fechado = True


class FakeChromium:
    def __init__(self, browser=None, erro_launch=None):
        self.browser = browser
        self.erro_launch = erro_launch

    async def launch(self, **kwargs):
        if self.erro_launch:
            raise self.erro_launch
        return self.browser


class FakePlaywright:
    def __init__(self, chromium):
        self.chromium = chromium
        self.parado = False

    async def stop(self):
        self.parado = True


class FakePlaywrightManager:
    def __init__(self, playwright):
        self.playwright = playwright

    async def start(self):
        return self.playwright


def _instalar_playwright(monkeypatch, playwright):
    monkeypatch.setattr(
        "cadastros.services.spc_bot.async_playwright", lambda: FakePlaywrightManager(playwright)
    )


def test_falha_no_launch_encerra_o_playwright(monkeypatch, tmp_path):
    playwright = FakePlaywright(FakeChromium(erro_launch=RuntimeError("Executable doesn't exist")))
    _instalar_playwright(monkeypatch, playwright)
    bot = SpcBot(make_settings(DOWNLOAD_PATH=str(tmp_path)))

    async def abrir():
        async with bot:
            pass

    with pytest.raises(RuntimeError):
        asyncio.run(abrir())

    assert playwright.parado
    assert bot.playwright is None


def test_falha_ao_criar_contexto_fecha_browser_e_playwright(monkeypatch, tmp_path):
    browser = FakeBrowser(erro_contexto=RuntimeError("Target closed"))
    playwright = FakePlaywright(FakeChromium(browser=browser))
    _instalar_playwright(monkeypatch, playwright)
    adaptador = SpcRegistryAdapter(make_settings(DOWNLOAD_PATH=str(tmp_path)))

    result = asyncio.run(adaptador.consultar(CNPJ))

    assert not result.success
    assert "Target closed" in result.error
    assert browser.fechado
    assert playwright.parado
