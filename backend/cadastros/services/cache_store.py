"""
Cache de consultas SPC por CNPJ em arquivo JSON.

Evita repetir a consulta (e o custo) de um CNPJ dentro do TTL. É um
armazenamento lateral, sem vínculo com as tabelas do banco.
"""
import json
import logging
import os
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class CacheStore:
    """
    Mapa CNPJ -> entrada {file_name, file_path, success, consulted_at, expires_at, error}.

    Uso:
        cache = CacheStore("./cnpj_cache.json", ttl_hours=24)
        cache.init()
        ...
        cache.close()
    """

    def __init__(self, path: str, ttl_hours: int = 24, clock: Callable[[], datetime] = datetime.now):
        self.path = path
        self.ttl = timedelta(hours=ttl_hours)
        self._clock = clock
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._dirty = False

    def init(self) -> None:
        """Carrega o arquivo; ausente ou corrompido começa vazio"""
        self._entries = {}
        if not os.path.exists(self.path):
            logger.info(f"[CACHE] Arquivo {self.path} não existe, iniciando cache vazio")
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                dados = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[CACHE] Arquivo de cache inválido ({e}), iniciando cache vazio")
            return

        if isinstance(dados, dict):
            self._entries = {k: v for k, v in dados.items() if isinstance(v, dict)}
        logger.info(f"[CACHE] {len(self._entries)} entradas carregadas")

    def close(self) -> None:
        self.flush()

    def flush(self) -> None:
        if not self._dirty:
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._entries, f, ensure_ascii=False, indent=2)
        self._dirty = False

    def _expirada(self, entrada: Dict[str, Any]) -> bool:
        try:
            expira = datetime.fromisoformat(entrada["expires_at"])
        except (KeyError, TypeError, ValueError):
            return True
        return expira <= self._clock()

    def get(self, cnpj: str) -> Optional[Dict[str, Any]]:
        """Entrada válida ou None. Entradas expiradas são removidas na leitura."""
        entrada = self._entries.get(cnpj)
        if entrada is None:
            return None

        if self._expirada(entrada):
            logger.info(f"[CACHE] Entrada do CNPJ {cnpj} expirada, removendo")
            del self._entries[cnpj]
            self._dirty = True
            return None

        return dict(entrada)

    def set(
        self,
        cnpj: str,
        success: bool,
        file_name: Optional[str] = None,
        file_path: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Dict[str, Any]:
        agora = self._clock()
        entrada = {
            "file_name": file_name,
            "file_path": file_path,
            "success": success,
            "consulted_at": agora.isoformat(),
            "expires_at": (agora + self.ttl).isoformat(),
            "error": error,
        }
        self._entries[cnpj] = entrada
        self._dirty = True
        self.flush()
        logger.debug(f"[CACHE] Entrada gravada para {cnpj} (success={success})")
        return dict(entrada)

    def clear_expired(self) -> int:
        expiradas = [cnpj for cnpj, entrada in self._entries.items() if self._expirada(entrada)]
        for cnpj in expiradas:
            del self._entries[cnpj]
        if expiradas:
            self._dirty = True
            logger.info(f"[CACHE] {len(expiradas)} entradas expiradas removidas")
        return len(expiradas)

    def stats(self) -> Dict[str, int]:
        expiradas = sum(1 for entrada in self._entries.values() if self._expirada(entrada))
        sucessos = sum(1 for entrada in self._entries.values() if entrada.get("success"))
        return {
            "total": len(self._entries),
            "validas": len(self._entries) - expiradas,
            "expiradas": expiradas,
            "sucessos": sucessos,
            "falhas": len(self._entries) - sucessos,
        }
