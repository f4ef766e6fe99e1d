"""
Sistema de manejo de reintentos.

Este módulo implementa reintentos con backoff exponencial, respetando
el Retry-After de Shopify en respuestas 429.
"""

import asyncio
import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, Type

from agentos.utils.error_handler import AppException, UpstreamError

logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    Política de reintentos configurable.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retry_on: Optional[List[Type[Exception]]] = None,
        stop_on: Optional[List[Type[Exception]]] = None,
    ):
        """
        Inicializa la política de reintentos.

        Args:
            max_attempts: Número máximo de intentos
            base_delay: Delay base en segundos
            max_delay: Delay máximo en segundos
            exponential_base: Base para backoff exponencial
            jitter: Si agregar jitter aleatorio
            retry_on: Excepciones (no AppException) en las que reintentar
            stop_on: Excepciones que detienen inmediatamente
        """
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on or []
        self.stop_on = stop_on or []

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """
        Determina si debe reintentar la operación.

        Args:
            exception: Excepción que ocurrió
            attempt: Número de intento actual (1-based)

        Returns:
            bool: True si debe reintentar
        """
        if attempt >= self.max_attempts:
            return False

        for stop_exc in self.stop_on:
            if isinstance(exception, stop_exc):
                return False

        if isinstance(exception, AppException):
            return exception.is_retryable

        return any(isinstance(exception, retry_exc) for retry_exc in self.retry_on)

    def calculate_delay(self, attempt: int, exception: Optional[Exception] = None) -> float:
        """
        Calcula el delay antes del siguiente intento.

        Args:
            attempt: Número de intento (1-based)
            exception: Excepción que causó el retry (opcional)

        Returns:
            float: Segundos a esperar
        """
        # Shopify indica cuánto esperar en los 429
        if isinstance(exception, UpstreamError) and exception.retry_after:
            return min(float(exception.retry_after), self.max_delay)

        delay = self.base_delay * (self.exponential_base ** (attempt - 1))

        if self.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)

        delay = min(delay, self.max_delay)

        return max(delay, 0)


class RetryHandler:
    """
    Ejecuta operaciones async aplicando una RetryPolicy.
    """

    def __init__(self, name: str, retry_policy: Optional[RetryPolicy] = None):
        self.name = name
        self.retry_policy = retry_policy or RetryPolicy()
        self.metrics = {
            "total_attempts": 0,
            "total_successes": 0,
            "total_failures": 0,
            "total_retries": 0,
        }

    async def execute(self, func: Callable, *args, context: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        """
        Ejecuta una corrutina con reintentos.

        Args:
            func: Función async a ejecutar
            *args: Argumentos posicionales
            context: Contexto adicional para logging
            **kwargs: Argumentos con nombre

        Returns:
            Any: Resultado de la función

        Raises:
            Exception: La última excepción si todos los reintentos fallan
        """
        context = context or {}
        start_time = time.time()
        attempt = 0

        while True:
            attempt += 1
            self.metrics["total_attempts"] += 1

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                self.metrics["total_failures"] += 1

                if not self.retry_policy.should_retry(e, attempt):
                    if attempt > 1:
                        logger.warning(
                            f"❌ {self.name} falló tras {attempt} intentos: {type(e).__name__}: {e}",
                            extra={"context": context},
                        )
                    raise

                delay = self.retry_policy.calculate_delay(attempt, e)
                self.metrics["total_retries"] += 1
                logger.info(
                    f"🔄 Reintentando {self.name} en {delay:.2f}s - "
                    f"Intento {attempt + 1}/{self.retry_policy.max_attempts}",
                    extra={"exception": str(e), "delay": delay, "context": context},
                )
                await asyncio.sleep(delay)
                continue

            self.metrics["total_successes"] += 1
            logger.debug(f"{self.name} ejecutado en {time.time() - start_time:.2f}s (intento {attempt})")
            return result

    def get_metrics(self) -> Dict[str, Any]:
        return {"name": self.name, **self.metrics}
