"""
Leitura da lista de CNPJs a partir de planilha Excel.
"""
import logging
import os
from typing import List, Optional

import pandas as pd

from cadastros.utils.cnpj import cnpj_valido, normalizar_cnpj

logger = logging.getLogger(__name__)


class ExcelReader:
    """Extrai CNPJs de uma coluna da planilha (XLSX)"""

    ALLOWED_EXTENSIONS = {'.xlsx', '.xlsm'}
    # Nomes de colunas aceitos para o CNPJ, em ordem de prioridade
    CNPJ_COLUMNS = ['cnpj', 'CNPJ', 'cpf_cnpj', 'documento']

    def __init__(self, path: str, sheet: Optional[str] = None, column: Optional[str] = None):
        self.path = path
        self.sheet = sheet
        self.column = column

    def _read_excel(self) -> pd.DataFrame:
        ext = os.path.splitext(self.path)[1].lower()
        if ext not in self.ALLOWED_EXTENSIONS:
            raise ValueError(f"Formato não suportado: {ext}. Use XLSX.")
        if not os.path.exists(self.path):
            raise ValueError(f"Arquivo Excel não encontrado: {self.path}")

        try:
            # dtype=str preserva zeros à esquerda de CNPJs digitados como texto
            return pd.read_excel(self.path, sheet_name=self.sheet or 0, engine='openpyxl', dtype=str)
        except (OSError, KeyError) as e:
            raise ValueError(f"Erro ao ler arquivo Excel: {str(e)}") from e

    def _find_column(self, df: pd.DataFrame) -> str:
        """Coluna informada ou detectada pelos nomes conhecidos (exato, depois case-insensitive)"""
        if self.column:
            if self.column in df.columns:
                return self.column
            raise ValueError(f"Coluna '{self.column}' não encontrada. Colunas: {list(df.columns)}")

        for name in self.CNPJ_COLUMNS:
            if name in df.columns:
                return name

        columns_lower = {str(col).lower(): col for col in df.columns}
        for name in self.CNPJ_COLUMNS:
            if name.lower() in columns_lower:
                return columns_lower[name.lower()]

        raise ValueError(
            f"Coluna de CNPJ não encontrada. Use uma das colunas {self.CNPJ_COLUMNS} ou informe EXCEL_CNPJ_COLUMN"
        )

    def read(self) -> List[str]:
        """
        Lê a planilha e devolve os CNPJs válidos.

        Valores são normalizados para 14 dígitos, duplicados são removidos
        (mantendo a ordem) e CNPJs com dígito verificador inválido descartados.

        Raises:
            ValueError: arquivo ou coluna inválidos
        """
        df = self._read_excel()
        if df.empty:
            raise ValueError("Planilha vazia")

        coluna = self._find_column(df)
        cnpjs: List[str] = []
        invalidos = 0

        for valor in df[coluna]:
            if pd.isna(valor):
                continue
            texto = str(valor).strip()
            if texto.endswith(".0") and texto[:-2].isdigit():
                texto = texto[:-2]
            cnpj = normalizar_cnpj(texto)
            if not cnpj:
                continue
            # CNPJs numéricos perdem os zeros à esquerda
            if len(cnpj) < 14:
                cnpj = cnpj.zfill(14)
            if not cnpj_valido(cnpj):
                invalidos += 1
                logger.warning(f"CNPJ inválido ignorado: {valor}")
                continue
            if cnpj not in cnpjs:
                cnpjs.append(cnpj)

        logger.info(
            f"{len(cnpjs)} CNPJs lidos da coluna '{coluna}' de {os.path.basename(self.path)}"
            f" ({invalidos} inválidos)"
        )
        return cnpjs
