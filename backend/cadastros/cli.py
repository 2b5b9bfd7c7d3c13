"""
Linha de comando do pipeline de cadastro.

Uso:
    cadastros --cnpj 17283362000130
    cadastros --excel clientes.xlsx --sheet Plan1 --column CNPJ
    cadastros --excel clientes.xlsx --watch
    python -m cadastros --no-atak
"""
import argparse
import asyncio
import logging
import os
import sys
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from cadastros import __version__
from cadastros.core.config import Settings, settings as default_settings, validate_config
from cadastros.core.database import close_db, init_db
from cadastros.core.exceptions import CadastroError, ConfigError
from cadastros.core.logging import setup_logging
from cadastros.services.atak_client import AtakClient
from cadastros.services.batch_runner import BatchRunner
from cadastros.services.cache_store import CacheStore
from cadastros.services.cnpja_client import CnpjaClient
from cadastros.services.excel_reader import ExcelReader
from cadastros.services.excel_watcher import ExcelWatcher
from cadastros.services.orchestrator import Orchestrator
from cadastros.services.persistence import PersistenceLayer
from cadastros.services.spc_bot import SpcRegistryAdapter
from cadastros.services.tess_client import TessClient
from cadastros.utils.cnpj import formatar_cnpj, normalizar_cnpj

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cadastros",
        description="Consulta SPC, extrai com TESS, cruza com CNPJÁ, grava no banco e cadastra no Atak",
    )
    parser.add_argument("--cnpj", help="CNPJ a consultar (sobrepõe CNPJ_TO_QUERY)")
    parser.add_argument("--excel", help="Planilha com a lista de CNPJs (sobrepõe EXCEL_FILE)")
    parser.add_argument("--sheet", help="Aba da planilha (sobrepõe EXCEL_SHEET)")
    parser.add_argument("--column", help="Coluna dos CNPJs (sobrepõe EXCEL_CNPJ_COLUMN)")
    parser.add_argument("--no-atak", action="store_true", help="Não executa o cadastro no Atak")
    parser.add_argument(
        "--watch", action="store_true", help="Monitora a planilha e processa CNPJs novos a cada gravação"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def aplicar_argumentos(config: Settings, args: argparse.Namespace) -> Settings:
    """Argumentos de linha de comando têm prioridade sobre o .env"""
    overrides = {}
    if args.cnpj:
        overrides["CNPJ_TO_QUERY"] = args.cnpj
    if args.excel:
        overrides["EXCEL_FILE"] = args.excel
        if not args.cnpj:
            overrides["CNPJ_TO_QUERY"] = None
    if args.sheet:
        overrides["EXCEL_SHEET"] = args.sheet
    if args.column:
        overrides["EXCEL_CNPJ_COLUMN"] = args.column
    if args.no_atak:
        overrides["ATAK_ENABLED"] = False
    if args.watch:
        overrides["WATCH_EXCEL"] = True
        overrides["CNPJ_TO_QUERY"] = None
    return config.model_copy(update=overrides) if overrides else config


def create_directories(config: Settings):
    """Cria os diretórios de saída usados pelo pipeline"""
    directories = [
        config.DOWNLOAD_PATH,
        config.TESS_OUTPUT_PATH,
        config.CNPJA_OUTPUT_PATH,
        config.REPORTS_PATH,
        os.path.dirname(config.CACHE_FILE),
    ]
    for directory in directories:
        if directory:
            os.makedirs(directory, exist_ok=True)
            logger.debug(f"Diretório garantido: {directory}")


def build_orchestrator(config: Settings) -> Tuple[Orchestrator, CacheStore]:
    cache = CacheStore(config.CACHE_FILE, ttl_hours=config.CNPJ_CACHE_EXPIRATION_HOURS)
    cache.init()

    orchestrator = Orchestrator(
        spc=SpcRegistryAdapter(config),
        tess=TessClient(config),
        cnpja=CnpjaClient(config),
        persistence=PersistenceLayer(),
        cache=cache,
        atak=AtakClient(config) if config.ATAK_ENABLED else None,
        config=config,
    )
    return orchestrator, cache


def carregar_cnpjs(config: Settings) -> List[str]:
    if config.CNPJ_TO_QUERY:
        cnpj = normalizar_cnpj(config.CNPJ_TO_QUERY)
        if len(cnpj) != 14:
            raise ConfigError(f"CNPJ inválido: {config.CNPJ_TO_QUERY}")
        return [cnpj]

    reader = ExcelReader(config.EXCEL_FILE, sheet=config.EXCEL_SHEET, column=config.EXCEL_CNPJ_COLUMN)
    try:
        cnpjs = reader.read()
    except ValueError as e:
        raise ConfigError(str(e)) from e
    if not cnpjs:
        raise ConfigError(f"Nenhum CNPJ válido encontrado em {config.EXCEL_FILE}")
    return cnpjs


async def run(
    config: Settings,
    orchestrator_factory: Callable[[Settings], Tuple[Orchestrator, CacheStore]] = build_orchestrator,
    parar: Optional[asyncio.Event] = None,
) -> int:
    """
    Executa o pipeline para o CNPJ único, para a planilha ou monitora a planilha.

    Returns:
        0 quando todos os itens foram processados (mesmo com falhas individuais)
    """
    if config.WATCH_EXCEL:
        orchestrator, cache = orchestrator_factory(config)
        watcher = ExcelWatcher(
            config.EXCEL_FILE,
            orchestrator,
            sheet=config.EXCEL_SHEET,
            column=config.EXCEL_CNPJ_COLUMN,
            delay_seconds=config.BATCH_DELAY_SECONDS,
            debounce_seconds=config.WATCH_DEBOUNCE_SECONDS,
        )
        try:
            await watcher.executar(parar)
        finally:
            cache.close()
        return 0

    cnpjs = carregar_cnpjs(config)
    orchestrator, cache = orchestrator_factory(config)

    try:
        if len(cnpjs) == 1 and config.CNPJ_TO_QUERY:
            try:
                resultado = await orchestrator.processar(cnpjs[0])
            except CadastroError as e:
                logger.error(f"[PIPELINE] CNPJ {cnpjs[0]} não processado: {e}")
                return 0
            except Exception as e:
                logger.exception(f"[PIPELINE] Erro inesperado no CNPJ {cnpjs[0]}: {e}")
                return 0
            if resultado.success:
                logger.info(f"[PIPELINE] CNPJ {formatar_cnpj(resultado.cnpj)} processado com sucesso")
            else:
                logger.error(f"[PIPELINE] CNPJ {formatar_cnpj(resultado.cnpj)} falhou: {resultado.error}")
            if resultado.atak_erro:
                logger.warning(f"[PIPELINE] Erro no Atak: {resultado.atak_erro}")
        else:
            runner = BatchRunner(
                orchestrator,
                delay_seconds=config.BATCH_DELAY_SECONDS,
                reports_path=config.REPORTS_PATH,
            )
            await runner.executar(cnpjs)
    finally:
        cache.close()

    return 0


def main(
    argv: Optional[List[str]] = None,
    config: Optional[Settings] = None,
    orchestrator_factory: Callable[[Settings], Tuple[Orchestrator, CacheStore]] = build_orchestrator,
) -> int:
    args = parse_args(argv)
    config = aplicar_argumentos(config or default_settings, args)

    setup_logging(level=config.LOG_LEVEL, json_logs=config.JSON_LOGS, log_file=config.LOG_FILE)

    problemas = validate_config(config, require_atak=config.ATAK_ENABLED)
    if problemas:
        for problema in problemas:
            logger.error(f"Configuração inválida: {problema}")
        return 1

    try:
        create_directories(config)
        init_db(config.database_url, create_tables=True)
    except (OSError, CadastroError) as e:
        logger.error(f"Erro na inicialização: {e}")
        return 1
    except (SQLAlchemyError, ImportError) as e:
        logger.exception(f"[DB] Não foi possível conectar ao banco: {e}")
        return 1

    try:
        return asyncio.run(run(config, orchestrator_factory))
    except ConfigError as e:
        logger.error(f"Configuração inválida: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Execução interrompida pelo usuário")
        return 0
    finally:
        close_db()


if __name__ == "__main__":
    sys.exit(main())
