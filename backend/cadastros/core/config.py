from pydantic_settings import BaseSettings
from typing import List, Optional
from urllib.parse import quote_plus
import os


class Settings(BaseSettings):
    # SPC
    SPC_URL: str = "https://sistema.spcbrasil.com.br"
    SPC_OPERADOR: str = ""
    SPC_SENHA: str = ""
    SPC_PALAVRA_SECRETA: str = ""
    DOWNLOAD_PATH: str = "./downloads"
    CNPJ_TO_QUERY: Optional[str] = None
    EXCEL_FILE: Optional[str] = None
    EXCEL_SHEET: Optional[str] = None
    EXCEL_CNPJ_COLUMN: Optional[str] = None
    WATCH_EXCEL: bool = False
    WATCH_DEBOUNCE_SECONDS: float = 1.0
    HEADLESS: bool = True
    BROWSER_TIMEOUT: int = 30000  # ms
    DEBUG: bool = False
    CNPJ_CACHE_EXPIRATION_HOURS: int = 24
    CACHE_FILE: str = "./cnpj_cache.json"

    # TESS
    TESS_API_KEY: Optional[str] = None
    TESS_BASE_URL: str = "https://tess.pareto.io"
    TESS_AGENT_ID: Optional[str] = None
    TESS_MODEL: str = "tess-5"
    TESS_TEMPERATURE: float = 1.0
    TESS_OUTPUT_PATH: str = "./tess_responses"
    TESS_PROMPT: Optional[str] = None

    # CNPJA
    CNPJA_API_KEY: Optional[str] = None
    CNPJA_BASE_URL: str = "https://api.cnpja.com"
    CNPJA_OUTPUT_PATH: str = "./cnpja_responses"

    # Banco de dados (SQL Server por padrão)
    DATABASE_URL: Optional[str] = None
    DB_SERVER: str = "localhost"
    DB_DATABASE: str = "consultas"
    DB_USER: str = "sa"
    DB_PASSWORD: str = ""
    DB_PORT: int = 1433
    DB_ENCRYPT: bool = False
    DB_TRUST_SERVER_CERTIFICATE: bool = True
    DB_DRIVER: str = "ODBC Driver 18 for SQL Server"

    # Atak
    ATAK_ENABLED: bool = False
    ATAK_USERNAME: Optional[str] = None
    ATAK_PASSWORD: Optional[str] = None
    ATAK_BASE_URL: Optional[str] = None
    ATAK_TOKEN: Optional[str] = None
    ATAK_TIPO_CADASTRO: str = "G"
    ATAK_CODIGO_FILIAL: str = "001"
    ATAK_CODIGO_CARTEIRA: int = 101
    ATAK_CODIGO_LISTA_PRECO: int = 1
    ATAK_CODIGO_FORMA_COBRANCA: int = 1
    ATAK_CODIGO_VENDEDOR: int = 1
    ATAK_CODIGO_RAMO_ATIVIDADE: str = "037"
    ATAK_CODIGO_PERCURSO_ROTA: str = ""
    IBGE_DIR: str = "./codIBGE"

    # Logging / lote
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True
    LOG_FILE: Optional[str] = "./logs/cadastros.ndjson"
    BATCH_DELAY_SECONDS: float = 2.0
    REPORTS_PATH: Optional[str] = "./reports"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def database_url(self) -> str:
        """URL do SQLAlchemy. DATABASE_URL tem prioridade sobre os campos DB_*"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        driver = quote_plus(self.DB_DRIVER)
        encrypt = "yes" if self.DB_ENCRYPT else "no"
        trust = "yes" if self.DB_TRUST_SERVER_CERTIFICATE else "no"
        return (
            f"mssql+pyodbc://{quote_plus(self.DB_USER)}:{quote_plus(self.DB_PASSWORD)}"
            f"@{self.DB_SERVER}:{self.DB_PORT}/{self.DB_DATABASE}"
            f"?driver={driver}&Encrypt={encrypt}&TrustServerCertificate={trust}"
        )

    @property
    def atak_configured(self) -> bool:
        return bool(self.ATAK_USERNAME and self.ATAK_PASSWORD and self.ATAK_BASE_URL)


def validate_config(config: Settings, require_atak: bool = False) -> List[str]:
    """
    Valida as configurações obrigatórias para rodar o pipeline.

    Args:
        config: Instância de Settings
        require_atak: Se True, exige credenciais do Atak

    Returns:
        Lista de problemas encontrados (vazia se tudo estiver ok)
    """
    erros = []

    if not config.SPC_OPERADOR:
        erros.append("SPC_OPERADOR não configurado")
    if not config.SPC_SENHA:
        erros.append("SPC_SENHA não configurada")
    if not config.SPC_PALAVRA_SECRETA:
        erros.append("SPC_PALAVRA_SECRETA não configurada")

    if config.WATCH_EXCEL:
        # a planilha pode ser criada depois que o monitoramento começa
        if not config.EXCEL_FILE:
            erros.append("WATCH_EXCEL requer EXCEL_FILE")
    elif not config.CNPJ_TO_QUERY and not config.EXCEL_FILE:
        erros.append("Informe CNPJ_TO_QUERY ou EXCEL_FILE")
    elif config.EXCEL_FILE and not config.CNPJ_TO_QUERY and not os.path.exists(config.EXCEL_FILE):
        erros.append(f"Arquivo Excel não encontrado: {config.EXCEL_FILE}")

    if not config.TESS_API_KEY:
        erros.append("TESS_API_KEY não configurada")
    if not config.TESS_AGENT_ID:
        erros.append("TESS_AGENT_ID não configurado")

    if not config.CNPJA_API_KEY:
        erros.append("CNPJA_API_KEY não configurada")

    if require_atak and not config.atak_configured:
        erros.append("Configure ATAK_USERNAME, ATAK_PASSWORD e ATAK_BASE_URL para habilitar o Atak")

    return erros


settings = Settings()
