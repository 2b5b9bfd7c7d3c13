"""
Helper genérico de "primeiro seletor que casa" para Playwright.

As listas de seletores ficam em spc_selectors; aqui só a estratégia de
avaliação em ordem de prioridade.
"""
import logging
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


def formatar_seletor(seletor: str) -> str:
    """XPath puro ganha o prefixo xpath= esperado pelo Playwright"""
    if seletor.startswith("//") and not seletor.startswith("xpath="):
        return f"xpath={seletor}"
    return seletor


async def primeiro_seletor(
    page,
    seletores: Sequence[str],
    timeout_ms: int = 3000,
    state: str = "visible",
    descricao: str = "",
) -> Tuple[Optional[object], Optional[str]]:
    """
    Testa os seletores na ordem e devolve o primeiro elemento encontrado.

    Args:
        page: Página Playwright (ou objeto com wait_for_selector compatível)
        seletores: Seletores CSS/texto/XPath em ordem de prioridade
        timeout_ms: Tempo máximo por seletor
        state: Estado esperado do elemento
        descricao: Nome do elemento para logs

    Returns:
        (elemento, seletor) ou (None, None) se nenhum casar
    """
    for seletor in seletores:
        try:
            elemento = await page.wait_for_selector(
                formatar_seletor(seletor), state=state, timeout=timeout_ms
            )
        except Exception:
            continue
        if elemento:
            logger.debug(f"[SPC] '{descricao}' encontrado com seletor: {seletor[:60]}")
            return elemento, seletor

    return None, None


async def clicar_primeiro(
    page,
    seletores: Sequence[str],
    descricao: str,
    timeout_ms: int = 3000,
) -> bool:
    """Clica no primeiro seletor encontrado. False se nenhum casar ou o clique falhar."""
    elemento, seletor = await primeiro_seletor(page, seletores, timeout_ms, descricao=descricao)
    if not elemento:
        logger.warning(f"[SPC] Não encontrou '{descricao}'")
        return False
    try:
        await elemento.click()
    except Exception as e:
        logger.warning(f"[SPC] Falha ao clicar em '{descricao}' ({seletor}): {e}")
        return False
    logger.info(f"[SPC] Clicou em '{descricao}'")
    return True

