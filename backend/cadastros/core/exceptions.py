"""
Taxonomia de erros do pipeline de cadastro.

Os adaptadores convertem essas exceções em StageResult via ExternalFetcher;
apenas PersistenceError (e erros inesperados) sobem até o lote/CLI.
"""
from typing import Optional


class CadastroError(Exception):
    """Erro base do pipeline"""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider

    def __str__(self) -> str:
        return self.message


class TransportError(CadastroError):
    """Falha de rede, timeout ou status HTTP retentável"""

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, provider)
        self.status_code = status_code


class AuthError(CadastroError):
    """Credencial ou token inválido"""


class NotFoundError(CadastroError):
    """Identificador desconhecido pelo provedor"""


class RateLimitError(CadastroError):
    """Provedor pediu para aguardar (HTTP 429)"""

    def __init__(self, message: str, provider: Optional[str] = None, retry_after: Optional[float] = None):
        super().__init__(message, provider)
        self.retry_after = retry_after


class ValidationError(CadastroError):
    """Payload do provedor malformado ou insuficiente"""


class PersistenceError(CadastroError):
    """Falha no banco de dados; a transação inteira foi desfeita"""


class ConfigError(CadastroError):
    """Configuração obrigatória ausente ou inválida"""
