"""
Robô de consulta ao portal SPC Brasil (SPC + POSITIVO AVANÇADO PJ).

Fluxo:
1. Login em duas etapas (operador/senha, depois palavra secreta)
2. Fecha propagandas (best-effort)
3. Navega Consultas > CONSULTA PESSOA JURÍDICA > SPC + POSITIVO AVANÇADO PJ
4. Consulta o CNPJ e aguarda o resultado
5. Gera o PDF do relatório (três estratégias em cascata)

O robô nunca repete o fluxo inteiro; retry por CNPJ é responsabilidade do
orquestrador/cache.
"""

import asyncio
import logging
import os
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from playwright.async_api import async_playwright, Browser, BrowserContext, Playwright, Page

from cadastros.core.config import Settings, settings as default_settings
from cadastros.core.exceptions import CadastroError
from cadastros.schemas.stage import StageResult
from cadastros.services import spc_selectors as sel
from cadastros.services.external_fetcher import ExternalFetcher, RetryPolicy
from cadastros.utils.locators import clicar_primeiro, primeiro_seletor

logger = logging.getLogger(__name__)


class SpcBot:
    """
    Automação do portal SPC com Playwright.

    Uso:
        async with SpcBot() as bot:
            resultado = await bot.executar_consulta("17283362000130")
    """

    def __init__(self, config: Optional[Settings] = None):
        config = config or default_settings
        self.url = config.SPC_URL
        self.operador = config.SPC_OPERADOR
        self.senha = config.SPC_SENHA
        self.palavra_secreta = config.SPC_PALAVRA_SECRETA
        self.download_path = config.DOWNLOAD_PATH
        self.headless = config.HEADLESS
        self.timeout = config.BROWSER_TIMEOUT
        self.debug = config.DEBUG

        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    async def __aenter__(self):
        try:
            await self._iniciar_browser()
        except Exception:
            # __aexit__ não roda quando a abertura falha
            await self._fechar_browser()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self._fechar_browser()

    async def _iniciar_browser(self):
        """Inicia o Chromium com contexto pt-BR e downloads habilitados"""
        os.makedirs(self.download_path, exist_ok=True)

        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=self.headless,
            slow_mo=50 if self.debug else 0,
            args=[
                '--disable-blink-features=AutomationControlled',
                '--disable-dev-shm-usage',
                '--no-sandbox',
            ]
        )

        self.context = await self.browser.new_context(
            viewport={"width": 1366, "height": 900},
            locale='pt-BR',
            timezone_id='America/Sao_Paulo',
            accept_downloads=True,
        )
        self.page = await self.context.new_page()
        self.page.set_default_timeout(self.timeout)

    async def _fechar_browser(self):
        """Fecha o browser e libera recursos"""
        if self.context:
            await self.context.close()
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()
        self.context = None
        self.browser = None
        self.playwright = None
        self.page = None

    async def _aguardar_carregamento(self, tempo_extra: float = 1.0):
        """Aguarda networkidle; timeout aqui não é erro"""
        try:
            await self.page.wait_for_load_state("networkidle", timeout=10000)
        except Exception as e:
            logger.debug(f"[SPC] networkidle não atingido: {e}")
        await asyncio.sleep(tempo_extra)

    async def _preencher(self, seletores: List[str], valor: str, descricao: str, delay_ms: int = 0):
        campo, _ = await primeiro_seletor(self.page, seletores, descricao=descricao)
        if not campo:
            raise CadastroError(f"Campo {descricao} não encontrado", "SPC")
        await campo.click()
        await campo.fill("")
        if delay_ms:
            await campo.type(valor, delay=delay_ms)
        else:
            await campo.fill(valor)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def primeira_etapa_login(self):
        logger.info(f"[SPC] Passo 1: Acessando {self.url}")
        await self.page.goto(self.url, wait_until="domcontentloaded")
        await self._aguardar_carregamento()

        logger.info(f"[SPC] Preenchendo operador {self.operador} e senha {'*' * len(self.senha)}")
        await self._preencher(sel.OPERADOR, self.operador, "operador")
        await self._preencher(sel.SENHA, self.senha, "senha")

        if not await clicar_primeiro(self.page, sel.AVANCAR, "Avançar (login)", timeout_ms=10000):
            raise CadastroError("Falha na primeira etapa do login (operador e senha)", "SPC")
        await self._aguardar_carregamento(2.0)

    async def segunda_etapa_login(self):
        logger.info("[SPC] Passo 2: Informando palavra secreta")
        await self._preencher(sel.PALAVRA_SECRETA, self.palavra_secreta, "palavra secreta")

        if not await clicar_primeiro(self.page, sel.AVANCAR, "Avançar (palavra secreta)", timeout_ms=10000):
            raise CadastroError("Falha na segunda etapa do login (palavra secreta)", "SPC")
        await self._aguardar_carregamento(2.0)

    async def fechar_propaganda(self):
        """Fecha propagandas se aparecerem. Nunca falha."""
        logger.info("[SPC] Verificando propagandas")
        if await clicar_primeiro(self.page, sel.FECHAR_PROPAGANDA, "fechar propaganda", timeout_ms=2000):
            await asyncio.sleep(1)
        if await clicar_primeiro(self.page, sel.RECUSAR_CAMPANHA, "Não quero incluir", timeout_ms=2000):
            await asyncio.sleep(1)

    # ------------------------------------------------------------------
    # Navegação e consulta
    # ------------------------------------------------------------------

    async def navegar_consultas(self):
        logger.info("[SPC] Passo 3: Navegando para Consultas")
        if not await clicar_primeiro(self.page, sel.CARD_CONSULTAS, "Consultas"):
            raise CadastroError("Falha ao navegar para Consultas", "SPC")
        await self._aguardar_carregamento()

    async def navegar_positivo_avancado(self):
        logger.info("[SPC] Passo 4: Abrindo SPC + POSITIVO AVANÇADO PJ")
        # o menu lateral pode já estar aberto
        await clicar_primeiro(self.page, sel.MENU_PESSOA_JURIDICA, "CONSULTA PESSOA JURÍDICA", timeout_ms=2000)
        await asyncio.sleep(1)

        if not await clicar_primeiro(self.page, sel.PRODUTO_POSITIVO_AVANCADO, "SPC + POSITIVO AVANÇADO PJ"):
            raise CadastroError("SPC + POSITIVO AVANÇADO PJ não encontrado no menu", "SPC")
        await self._aguardar_carregamento()

    async def consultar_cnpj(self, cnpj: str):
        logger.info(f"[SPC] Passo 5: Consultando CNPJ {cnpj}")
        await self._preencher(sel.CAMPO_CNPJ, cnpj, "CNPJ", delay_ms=100)

        await self.page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
        await asyncio.sleep(0.5)

        if not await clicar_primeiro(self.page, sel.BOTAO_CONSULTAR, "Consultar"):
            raise CadastroError("Botão consultar não encontrado", "SPC")
        await self._aguardar_carregamento(2.0)

    async def aguardar_resultado(self):
        """Espera um indicador de resultado; sem indicador, usa espera fixa"""
        elemento, seletor = await primeiro_seletor(
            self.page, sel.INDICADORES_RESULTADO, timeout_ms=5000, state="attached", descricao="resultado"
        )

        if elemento:
            logger.info(f"[SPC] Resultado detectado ({seletor}), aguardando carregamento")
            for seletor_loading in sel.INDICADORES_CARREGANDO:
                try:
                    await self.page.wait_for_selector(seletor_loading, state="hidden", timeout=10000)
                except Exception as e:
                    logger.debug(f"[SPC] Loading {seletor_loading} ainda visível: {e}")
            await self._aguardar_carregamento(2.0)
        else:
            logger.info("[SPC] Nenhum indicador de resultado encontrado, aguardando tempo padrão")
            await asyncio.sleep(10)
            await self._aguardar_carregamento()

    async def verificar_cnpj_invalido(self, cnpj: str) -> Optional[str]:
        """
        Detecta o diálogo de "CNPJ inválido".
        Apenas registra e fecha o diálogo; não interrompe o fluxo.
        """
        elemento, _ = await primeiro_seletor(
            self.page, sel.CNPJ_INVALIDO, timeout_ms=1000, descricao="CNPJ inválido"
        )
        if not elemento:
            return None

        mensagem = (await elemento.text_content() or "CNPJ inválido").strip()
        logger.warning(f"[SPC] Mensagem de CNPJ inválido para {cnpj}: {mensagem[:200]}")
        await clicar_primeiro(self.page, sel.FECHAR_MODAL, "fechar diálogo", timeout_ms=1000)
        return mensagem

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    def _caminho_pdf(self, cnpj: str) -> str:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return os.path.join(self.download_path, f"consulta_{cnpj}_{timestamp}.pdf")

    async def _pdf_nativo(self, cnpj: str) -> str:
        """Estratégia (a): page.pdf() (somente Chromium headless)"""
        caminho = self._caminho_pdf(cnpj)
        await self.page.emulate_media(media="print")
        await self.page.pdf(
            path=caminho,
            format="A4",
            print_background=True,
            margin={"top": "1cm", "right": "1cm", "bottom": "1cm", "left": "1cm"},
            display_header_footer=True,
            header_template='<div style="font-size:10px;text-align:center;width:100%;">Consulta CNPJ - SPC</div>',
            footer_template='<div style="font-size:10px;text-align:center;width:100%;">'
                            'Página <span class="pageNumber"></span> de <span class="totalPages"></span></div>',
        )
        return caminho

    async def _salvar_download(self, disparar: Callable[[], Awaitable[None]], cnpj: str) -> str:
        async with self.page.expect_download(timeout=60000) as download_info:
            await disparar()
        download = await download_info.value
        caminho = self._caminho_pdf(cnpj)
        await download.save_as(caminho)
        return caminho

    async def _pdf_atalho_teclado(self, cnpj: str) -> str:
        """Estratégia (b): Ctrl+P e automação do diálogo de impressão"""
        async def disparar():
            await self.page.keyboard.press("Control+P")
            await asyncio.sleep(3)
            await clicar_primeiro(self.page, sel.DIALOGO_SALVAR, "Salvar (diálogo de impressão)")

        return await self._salvar_download(disparar, cnpj)

    async def _pdf_botao_imprimir(self, cnpj: str) -> str:
        """Estratégia (c): clique no botão Imprimir visível"""
        async def disparar():
            if not await clicar_primeiro(self.page, sel.BOTAO_IMPRIMIR, "Imprimir"):
                raise CadastroError("Botão imprimir não encontrado", "SPC")
            await asyncio.sleep(3)
            await clicar_primeiro(self.page, sel.DIALOGO_SALVAR, "Salvar (diálogo de impressão)")

        return await self._salvar_download(disparar, cnpj)

    def _estrategias_pdf(self) -> List[Tuple[str, Callable[[str], Awaitable[str]]]]:
        return [
            ("impressão nativa", self._pdf_nativo),
            ("atalho de teclado", self._pdf_atalho_teclado),
            ("botão imprimir", self._pdf_botao_imprimir),
        ]

    async def gerar_pdf(self, cnpj: str) -> str:
        """Tenta as estratégias em ordem; cada falha cai para a próxima"""
        erros = []
        for nome, estrategia in self._estrategias_pdf():
            try:
                logger.info(f"[SPC] Gerando PDF via {nome}")
                caminho = await estrategia(cnpj)
            except Exception as e:
                logger.warning(f"[SPC] Estratégia de PDF '{nome}' falhou: {e}")
                erros.append(f"{nome}: {e}")
                continue
            if caminho and os.path.exists(caminho):
                logger.info(f"[SPC] PDF salvo: {caminho}")
                return caminho
            erros.append(f"{nome}: arquivo não gerado")

        raise CadastroError(f"Falha ao baixar PDF ({'; '.join(erros)})", "SPC")

    # ------------------------------------------------------------------
    # Fluxo completo
    # ------------------------------------------------------------------

    async def executar_consulta(self, cnpj: str) -> Dict[str, Optional[str]]:
        """
        Executa login, navegação, consulta e geração do PDF.

        Returns:
            Dict com file_path, file_name e cnpj_invalido (mensagem ou None)

        Raises:
            CadastroError: em qualquer etapa obrigatória que falhar
        """
        await self.primeira_etapa_login()
        await self.segunda_etapa_login()
        await self.fechar_propaganda()
        await self.navegar_consultas()
        await self.navegar_positivo_avancado()
        await self.consultar_cnpj(cnpj)
        await self.aguardar_resultado()
        aviso = await self.verificar_cnpj_invalido(cnpj)

        caminho = await self.gerar_pdf(cnpj)
        logger.info(f"[SPC] Consulta do CNPJ {cnpj} concluída")
        return {
            "file_path": caminho,
            "file_name": os.path.basename(caminho),
            "cnpj_invalido": aviso,
        }


class SpcRegistryAdapter:
    """Adaptador da etapa SPC: abre o navegador, consulta e devolve StageResult"""

    def __init__(self, config: Optional[Settings] = None, bot_factory: Callable[[], SpcBot] = None):
        self.config = config or default_settings
        self._bot_factory = bot_factory or (lambda: SpcBot(self.config))
        # uma única tentativa: o fluxo de login não é repetido internamente
        self.fetcher = ExternalFetcher("SPC", RetryPolicy(max_attempts=1))

    async def consultar(self, cnpj: str) -> StageResult:
        async def acao():
            async with self._bot_factory() as bot:
                return await bot.executar_consulta(cnpj)

        return await self.fetcher.call(acao, f"consulta {cnpj}")
