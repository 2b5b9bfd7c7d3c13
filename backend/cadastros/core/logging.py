"""
Sistema de logging estruturado em JSON

Saída no stdout (JSON ou texto) e, opcionalmente, um arquivo NDJSON
append-only com uma linha por evento do pipeline.
"""
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Formatter customizado para logs em JSON"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)

        # Adicionar timestamp ISO 8601
        log_record['timestamp'] = datetime.utcnow().isoformat() + 'Z'

        log_record['level'] = record.levelname
        log_record['logger'] = record.name

        # Localização do código
        log_record['location'] = {
            'file': record.pathname,
            'line': record.lineno,
            'function': record.funcName
        }


def setup_logging(level: str = "INFO", json_logs: bool = True, log_file: Optional[str] = None) -> None:
    """
    Configura o sistema de logging

    Args:
        level: Nível de log (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Se True, usa formato JSON no stdout. Se False, usa formato texto.
        log_file: Caminho do arquivo NDJSON (sempre em JSON). None desativa.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    # Remover handlers existentes
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    json_formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')

    handler = logging.StreamHandler(sys.stdout)
    if json_logs:
        handler.setFormatter(json_formatter)
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    root_logger.addHandler(handler)

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setFormatter(json_formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(log_level)

    # Configurar níveis específicos para bibliotecas ruidosas
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def log_database_query(
    logger: logging.Logger,
    operation: str,
    table: str,
    params: Dict[str, Any] = None,
    rows_affected: int = None
):
    """
    Loga uma operação de persistência

    Args:
        logger: Logger a ser usado
        operation: insert, update, delete ou skip
        table: Tabela afetada
        params: Parâmetros relevantes (opcional)
        rows_affected: Número de linhas afetadas (opcional)
    """
    logger.debug(
        f"[DB] {operation} {table}",
        extra={
            'database': {
                'operation': operation,
                'table': table,
                'params': params,
                'rows_affected': rows_affected
            }
        }
    )


def log_api_call(
    logger: logging.Logger,
    provider: str,
    endpoint: str,
    status_code: int = None,
    duration_ms: float = None,
    attempt: int = None,
    credits: float = None,
    error: str = None
):
    """
    Loga uma chamada a API externa

    Args:
        logger: Logger a ser usado
        provider: Provedor (SPC, TESS, CNPJA, ATAK)
        endpoint: Endpoint ou ação chamada
        status_code: Código de status HTTP (opcional)
        duration_ms: Duração em milissegundos (opcional)
        attempt: Número da tentativa (opcional)
        credits: Créditos/unidades cobradas pelo provedor (opcional)
        error: Mensagem de erro se houver (opcional)
    """
    level = logging.WARNING if error else logging.INFO

    logger.log(
        level,
        f"API Call to {provider}",
        extra={
            'api_call': {
                'provider': provider,
                'endpoint': endpoint,
                'status_code': status_code,
                'duration_ms': duration_ms,
                'attempt': attempt,
                'credits': credits,
                'error': error
            }
        }
    )
