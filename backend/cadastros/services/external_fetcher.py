"""
Executor de chamadas externas com retry limitado.

Uma única implementação de backoff para todos os adaptadores (SPC, TESS,
CNPJÁ, Atak). A política decide, por tipo de erro, se a chamada é repetida
e quanto tempo aguardar.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple

import httpx

from cadastros.core.exceptions import (
    AuthError,
    CadastroError,
    NotFoundError,
    PersistenceError,
    RateLimitError,
    TransportError,
    ValidationError,
)
from cadastros.core.logging import log_api_call
from cadastros.schemas.stage import StageResult

logger = logging.getLogger(__name__)

# Status 4xx que valem nova tentativa
TRANSIENT_CLIENT_STATUS = {408, 409, 423, 425}


class RetryDecision(str, Enum):
    FATAL = "fatal"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_SERVER = "transient_server_error"
    TRANSIENT_CLIENT = "transient_client_error"


@dataclass
class RetryPolicy:
    """Política de retry consumida pelo ExternalFetcher"""
    max_attempts: int = 3
    backoff_ms: int = 2000
    default_retry_after: float = 10.0

    def classify(self, exc: BaseException) -> RetryDecision:
        """Mapeia a exceção para uma decisão de retry"""
        if isinstance(exc, RateLimitError):
            return RetryDecision.RATE_LIMITED
        if isinstance(exc, (AuthError, NotFoundError, ValidationError, PersistenceError)):
            return RetryDecision.FATAL
        if isinstance(exc, TransportError):
            if exc.status_code is not None and 400 <= exc.status_code < 500:
                return RetryDecision.TRANSIENT_CLIENT
            return RetryDecision.TRANSIENT_SERVER
        if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, asyncio.TimeoutError)):
            return RetryDecision.TRANSIENT_SERVER
        return RetryDecision.FATAL

    def delay_seconds(self, decision: RetryDecision, exc: BaseException, attempt: int) -> float:
        """Tempo de espera antes da próxima tentativa"""
        if decision == RetryDecision.RATE_LIMITED:
            retry_after = getattr(exc, "retry_after", None)
            return float(retry_after) if retry_after is not None else self.default_retry_after
        return (self.backoff_ms * attempt) / 1000.0


def parse_retry_after(value: Optional[str], default: Optional[float] = None) -> Optional[float]:
    """Lê o header Retry-After (apenas segundos)"""
    if not value:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        return default


def raise_for_status(response: httpx.Response, provider: str, not_found_message: Optional[str] = None) -> None:
    """
    Converte respostas HTTP de erro na taxonomia do pipeline.
    O corpo bruto do provedor vai na mensagem para diagnóstico manual.
    """
    status = response.status_code
    if status < 400:
        return

    body = response.text[:500] if response.text else ""

    if status in (401, 403):
        raise AuthError(f"Falha de autenticação no {provider} ({status}): {body}", provider)
    if status == 404:
        raise NotFoundError(not_found_message or f"Recurso não encontrado no {provider}: {body}", provider)
    if status == 429:
        raise RateLimitError(
            f"Limite de requisições atingido no {provider}",
            provider,
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )
    if status >= 500 or status in TRANSIENT_CLIENT_STATUS:
        raise TransportError(f"Erro HTTP {status} no {provider}: {body}", provider, status_code=status)

    raise ValidationError(f"Erro HTTP {status} no {provider}: {body}", provider)


class ExternalFetcher:
    """
    Executa uma ação assíncrona com retry limitado.

    Nunca faz mais que policy.max_attempts chamadas e nunca propaga exceção:
    sempre devolve StageResult. Uma linha de log por tentativa.
    """

    def __init__(
        self,
        provider: str,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.provider = provider
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def call(self, action: Callable[[], Awaitable[Any]], descricao: str = "") -> StageResult:
        """
        Args:
            action: Corrotina sem argumentos que executa a chamada e devolve os dados
            descricao: Nome da operação para os logs

        Returns:
            StageResult com os dados ou com a mensagem de erro do provedor
        """
        ultimo_erro = "Nenhuma tentativa executada"
        max_attempts = max(1, self.policy.max_attempts)

        for attempt in range(1, max_attempts + 1):
            inicio = time.monotonic()
            try:
                data = await action()
                log_api_call(
                    logger,
                    provider=self.provider,
                    endpoint=descricao,
                    duration_ms=round((time.monotonic() - inicio) * 1000, 1),
                    attempt=attempt,
                )
                return StageResult.ok(data, attempts=attempt)

            except Exception as e:
                decision, ultimo_erro = self._classificar(e)
                log_api_call(
                    logger,
                    provider=self.provider,
                    endpoint=descricao,
                    status_code=getattr(e, "status_code", None),
                    duration_ms=round((time.monotonic() - inicio) * 1000, 1),
                    attempt=attempt,
                    error=f"{decision.value}: {ultimo_erro}",
                )

                if decision == RetryDecision.FATAL:
                    return StageResult.fail(ultimo_erro, attempts=attempt)

                if attempt >= max_attempts:
                    break

                espera = self.policy.delay_seconds(decision, e, attempt)
                logger.warning(
                    f"[{self.provider}] {descricao}: tentativa {attempt}/{max_attempts} falhou "
                    f"({decision.value}). Aguardando {espera:.1f}s..."
                )
                await self._sleep(espera)

        return StageResult.fail(
            f"{ultimo_erro} (após {max_attempts} tentativas)", attempts=max_attempts
        )

    def _classificar(self, e: Exception) -> Tuple[RetryDecision, str]:
        decision = self.policy.classify(e)
        if isinstance(e, CadastroError):
            mensagem = e.message
        elif isinstance(e, httpx.TimeoutException):
            mensagem = f"Timeout na chamada ao {self.provider}: {e}"
        else:
            mensagem = str(e) or e.__class__.__name__
        return decision, mensagem
