"""
Busca do código IBGE de municípios nas planilhas locais do IBGE.

As planilhas (DTB do IBGE) ficam em IBGE_DIR. Coluna H (índice 7) tem o
código completo do município e a coluna I (índice 8) o nome.
"""
import logging
import os
from typing import List, Optional

import pandas as pd
from cachetools import TTLCache

logger = logging.getLogger(__name__)

COLUNA_CODIGO = 7
COLUNA_NOME = 8

# Prefixo de 2 dígitos do código IBGE por UF
CODIGOS_UF = {
    "RO": "11", "AC": "12", "AM": "13", "RR": "14", "PA": "15", "AP": "16", "TO": "17",
    "MA": "21", "PI": "22", "CE": "23", "RN": "24", "PB": "25", "PE": "26", "AL": "27",
    "SE": "28", "BA": "29",
    "MG": "31", "ES": "32", "RJ": "33", "SP": "35",
    "PR": "41", "SC": "42", "RS": "43",
    "MS": "50", "MT": "51", "GO": "52", "DF": "53",
}


class IbgeService:
    """Lookup best-effort: qualquer falha devolve None"""

    def __init__(self, diretorio: str, ttl: int = 3600):
        self.diretorio = diretorio
        self._cache = TTLCache(maxsize=2048, ttl=ttl)
        self._planilhas: Optional[List[pd.DataFrame]] = None

    def _carregar(self) -> List[pd.DataFrame]:
        if self._planilhas is not None:
            return self._planilhas

        planilhas = []
        if not os.path.isdir(self.diretorio):
            logger.warning(f"[IBGE] Pasta de planilhas não encontrada: {self.diretorio}")
            self._planilhas = planilhas
            return planilhas

        for nome in sorted(os.listdir(self.diretorio)):
            if not nome.lower().endswith(".xlsx") or nome.startswith("~$"):
                continue
            caminho = os.path.join(self.diretorio, nome)
            try:
                abas = pd.read_excel(caminho, header=None, sheet_name=None, engine="openpyxl", dtype=str)
            except (OSError, ValueError) as e:
                logger.error(f"[IBGE] Erro ao ler {caminho}: {e}")
                continue
            planilhas.extend(df for df in abas.values() if df.shape[1] > COLUNA_NOME)

        logger.info(f"[IBGE] {len(planilhas)} planilhas carregadas de {self.diretorio}")
        self._planilhas = planilhas
        return planilhas

    @staticmethod
    def _codigo_da_uf(codigo: str, uf: Optional[str]) -> bool:
        if not uf:
            return True
        prefixo = CODIGOS_UF.get(uf.strip().upper())
        return prefixo is None or codigo.startswith(prefixo)

    def _procurar(self, nome: str, uf: Optional[str], parcial: bool) -> Optional[str]:
        for df in self._carregar():
            for _, linha in df.iterrows():
                nome_planilha = linha[COLUNA_NOME]
                codigo = linha[COLUNA_CODIGO]
                if pd.isna(nome_planilha) or pd.isna(codigo):
                    continue
                nome_planilha = str(nome_planilha).strip().upper()
                codigo = str(codigo).strip()
                if not nome_planilha or not codigo.isdigit():
                    continue

                if parcial:
                    casou = nome in nome_planilha or nome_planilha in nome
                else:
                    casou = nome == nome_planilha

                if casou and self._codigo_da_uf(codigo, uf):
                    return codigo
        return None

    def buscar_codigo(self, cidade: Optional[str], uf: Optional[str] = None) -> Optional[str]:
        """
        Código IBGE completo do município.

        Args:
            cidade: Nome do município
            uf: Sigla do estado, usada para descartar homônimos de outras UFs

        Returns:
            Código de 7 dígitos ou None
        """
        if not cidade or not cidade.strip():
            return None

        nome = cidade.strip().upper()
        chave = (nome, (uf or "").strip().upper())
        if chave in self._cache:
            return self._cache[chave]

        codigo = self._procurar(nome, uf, parcial=False) or self._procurar(nome, uf, parcial=True)
        if codigo:
            logger.debug(f"[IBGE] {cidade}/{uf}: {codigo}")
        else:
            logger.warning(f"[IBGE] Código IBGE não encontrado para {cidade}{f' ({uf})' if uf else ''}")

        self._cache[chave] = codigo
        return codigo

    def limpar_cache(self):
        self._cache.clear()
        self._planilhas = None
