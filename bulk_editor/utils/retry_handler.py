"""
Sistema de manejo de reintentos y control de rate limit para GraphQL.

Este módulo implementa:
- Política de reintentos con backoff exponencial y jitter
- Transporte GraphQL que detecta throttling y lee el costo de cada query
- Monitor de presupuesto de rate limit para lotes de llamadas
- Ejecutor de lotes con ventanas de concurrencia acotada
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

import aiohttp

from bulk_editor.core.config import Settings, get_settings
from bulk_editor.utils.error_handler import AppException, RateLimitException

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

GraphQLSender = Callable[[str, Optional[Dict[str, Any]]], Awaitable[Dict[str, Any]]]

THROTTLED_CODE = "THROTTLED"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Política de reintentos inmutable.

    Se construye una vez y se inyecta en el transporte; no existe un
    valor por defecto global que pueda mutarse.

    Attributes:
        max_retries: Reintentos después del primer intento
        initial_delay: Delay base en segundos
        max_delay: Delay máximo en segundos
        jitter_ratio: Fracción máxima de jitter positivo sobre el delay
        low_budget_ratio: Fracción del máximo bajo la cual se avisa
        budget_floor: Puntos disponibles bajo los cuales se espera
        floor_sleep: Segundos de espera proactiva bajo el piso
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    jitter_ratio: float = 0.3
    low_budget_ratio: float = 0.2
    budget_floor: float = 100
    floor_sleep: float = 2.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RetryPolicy":
        """
        Crea la política a partir de la configuración.

        Args:
            settings: Configuración (usa la global si no se pasa)

        Returns:
            RetryPolicy: Política configurada
        """
        settings = settings or get_settings()
        return cls(
            max_retries=settings.RETRY_MAX_RETRIES,
            initial_delay=settings.RETRY_INITIAL_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
            low_budget_ratio=settings.RATE_LIMIT_LOW_BUDGET_RATIO,
            budget_floor=settings.RATE_LIMIT_FLOOR,
            floor_sleep=settings.RATE_LIMIT_FLOOR_SLEEP,
        )

    def should_retry(self, exception: BaseException, attempt: int) -> bool:
        """
        Determina si debe reintentar la operación.

        Args:
            exception: Excepción que ocurrió
            attempt: Reintentos ya realizados

        Returns:
            bool: True si debe reintentar
        """
        if attempt >= self.max_retries:
            return False

        if isinstance(exception, AppException):
            return exception.is_retryable

        return isinstance(exception, (aiohttp.ClientError, asyncio.TimeoutError))

    def calculate_delay(self, attempt: int, exception: Optional[BaseException] = None) -> float:
        """
        Calcula el delay antes del siguiente intento.

        Args:
            attempt: Número de reintento (1 para el primero)
            exception: Excepción que causó el retry (opcional)

        Returns:
            float: Segundos a esperar
        """
        if isinstance(exception, RateLimitException) and exception.retry_after:
            return min(float(exception.retry_after), self.max_delay)

        delay = self.initial_delay * (2 ** (attempt - 1))

        if self.jitter_ratio:
            delay += random.uniform(0, self.jitter_ratio * delay)

        return max(min(delay, self.max_delay), 0)


@dataclass
class ThrottleStatus:
    """Estado de costo reportado en ``extensions.cost`` de una respuesta."""

    requested_cost: Optional[float]
    actual_cost: Optional[float]
    available: float
    maximum: float
    restore_rate: float

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> Optional["ThrottleStatus"]:
        cost = (response.get("extensions") or {}).get("cost") or {}
        throttle = cost.get("throttleStatus")
        if not throttle:
            return None
        return cls(
            requested_cost=cost.get("requestedQueryCost"),
            actual_cost=cost.get("actualQueryCost"),
            available=float(throttle.get("currentlyAvailable", 0)),
            maximum=float(throttle.get("maximumAvailable", 0)),
            restore_rate=float(throttle.get("restoreRate", 0)),
        )


def is_throttled(response: Dict[str, Any]) -> bool:
    """
    Indica si la respuesta GraphQL contiene un error de throttling.

    Args:
        response: Respuesta JSON completa (data, errors, extensions)

    Returns:
        bool: True si algún error tiene código THROTTLED
    """
    for error in response.get("errors") or []:
        extensions = error.get("extensions") or {}
        if extensions.get("code") == THROTTLED_CODE:
            return True
    return False


def _default_low_budget(available: float, maximum: float) -> None:
    logger.warning(f"Rate limit low: {available:.0f}/{maximum:.0f} points available")


class RateLimitMonitor:
    """
    Monitor del presupuesto de rate limit a lo largo de varias llamadas.

    Extrapola linealmente los puntos disponibles según el tiempo
    transcurrido y la tasa de restauración, sin superar el máximo.
    """

    def __init__(
        self,
        initial_maximum: float = 1000,
        initial_restore_rate: float = 50,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.available = float(initial_maximum)
        self.maximum = float(initial_maximum)
        self.restore_rate = float(initial_restore_rate)
        self._clock = clock
        self._sleep = sleep
        self.last_update = clock()

    def update(self, status: Optional[ThrottleStatus]) -> None:
        """Actualiza el estado con el throttleStatus de una respuesta."""
        if status is None:
            return
        self.available = status.available
        self.maximum = status.maximum
        self.restore_rate = status.restore_rate
        self.last_update = self._clock()

    def estimate_available(self) -> float:
        """Estima los puntos disponibles en este momento."""
        elapsed = max(self._clock() - self.last_update, 0)
        return min(self.available + elapsed * self.restore_rate, self.maximum)

    def should_wait(self, threshold: float = 100) -> bool:
        """Indica si conviene esperar antes de la próxima llamada."""
        return self.estimate_available() < threshold

    async def wait_for_availability(self, threshold: float = 100) -> float:
        """
        Espera hasta que haya suficientes puntos disponibles.

        Args:
            threshold: Puntos requeridos

        Returns:
            float: Segundos esperados
        """
        available = self.estimate_available()
        if available >= threshold:
            return 0.0

        if self.restore_rate <= 0:
            logger.warning("Restore rate unknown, skipping rate limit wait")
            return 0.0

        needed = threshold - available
        wait_time = needed / self.restore_rate
        logger.info(f"Waiting {wait_time:.2f}s for {needed:.0f} rate limit points to restore...")
        await self._sleep(wait_time)
        return wait_time

    def get_status(self) -> Dict[str, float]:
        """Obtiene resumen del estado actual."""
        available = self.estimate_available()
        return {
            "available": available,
            "maximum": self.maximum,
            "percentage": (available / self.maximum * 100) if self.maximum else 0.0,
            "restore_rate": self.restore_rate,
        }


class RetryTransport:
    """
    Transporte GraphQL con reintentos, detección de throttling y control de costo.

    Envuelve una función ``send(query, variables)`` que realiza un único POST
    y devuelve la respuesta JSON completa.
    """

    def __init__(
        self,
        send: GraphQLSender,
        policy: Optional[RetryPolicy] = None,
        monitor: Optional[RateLimitMonitor] = None,
        on_low_budget: Optional[Callable[[float, float], None]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        name: str = "shopify_graphql",
    ):
        """
        Inicializa el transporte.

        Args:
            send: Función que ejecuta una llamada GraphQL sin reintentos
            policy: Política de reintentos
            monitor: Monitor compartido de rate limit (opcional)
            on_low_budget: Callback cuando el presupuesto cae bajo el umbral
            sleep: Función de espera (inyectable para tests)
            name: Nombre identificativo para logs
        """
        self._send = send
        self.policy = policy or RetryPolicy()
        self.monitor = monitor
        self.on_low_budget = on_low_budget or _default_low_budget
        self._sleep = sleep
        self.name = name
        self.metrics = {
            "total_attempts": 0,
            "total_successes": 0,
            "total_failures": 0,
            "total_retries": 0,
            "throttled_responses": 0,
        }

    async def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Ejecuta una llamada GraphQL con reintentos.

        Args:
            query: Query o mutation GraphQL
            variables: Variables de la llamada

        Returns:
            Dict: Respuesta JSON completa

        Raises:
            RateLimitException: Si el throttling persiste tras agotar reintentos
            Exception: La última falla de transporte tras agotar reintentos
        """
        attempt = 0

        while True:
            self.metrics["total_attempts"] += 1
            try:
                response = await self._send(query, variables)
            except Exception as e:
                self.metrics["total_failures"] += 1
                if not self.policy.should_retry(e, attempt):
                    logger.error(f"{self.name} failed after {attempt + 1} attempt(s): {e}")
                    raise
                attempt += 1
                await self._backoff(attempt, str(e), e)
                continue

            if is_throttled(response):
                self.metrics["throttled_responses"] += 1
                if attempt >= self.policy.max_retries:
                    self.metrics["total_failures"] += 1
                    raise RateLimitException(
                        f"Shopify API throttled after {attempt + 1} attempt(s)",
                        details={"errors": response.get("errors")},
                    )
                attempt += 1
                await self._backoff(attempt, "Throttled")
                continue

            self.metrics["total_successes"] += 1
            await self._inspect_cost(response)
            return response

    async def run(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Ejecuta una corrutina arbitraria con la misma política de reintentos.

        Se usa para llamadas que no son GraphQL (subida de archivos,
        descarga de resultados).

        Args:
            func: Función asíncrona a ejecutar
            *args: Argumentos posicionales
            **kwargs: Argumentos con nombre

        Returns:
            Resultado de la función
        """
        attempt = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if not self.policy.should_retry(e, attempt):
                    raise
                attempt += 1
                await self._backoff(attempt, str(e), e)

    async def _backoff(self, attempt: int, reason: str, exception: Optional[BaseException] = None) -> None:
        delay = self.policy.calculate_delay(attempt, exception)
        self.metrics["total_retries"] += 1
        logger.warning(
            f"Retrying {self.name} in {delay:.2f}s - Attempt {attempt}/{self.policy.max_retries}: {reason}",
            extra={"attempt": attempt, "delay": delay, "reason": reason},
        )
        await self._sleep(delay)

    async def _inspect_cost(self, response: Dict[str, Any]) -> None:
        status = ThrottleStatus.from_response(response)
        if status is None:
            return

        if self.monitor is not None:
            self.monitor.update(status)

        if status.maximum and status.available < status.maximum * self.policy.low_budget_ratio:
            self.on_low_budget(status.available, status.maximum)

        if status.available < self.policy.budget_floor:
            logger.info(
                f"Rate limit very low ({status.available:.0f}). Waiting {self.policy.floor_sleep:.1f}s..."
            )
            await self._sleep(self.policy.floor_sleep)

    def get_metrics(self) -> Dict[str, Any]:
        """
        Obtiene métricas del transporte.

        Returns:
            Dict: Métricas actuales
        """
        total = self.metrics["total_attempts"]
        success_rate = (self.metrics["total_successes"] / total * 100) if total > 0 else 0
        return {**self.metrics, "success_rate": round(success_rate, 2), "handler_name": self.name}


async def execute_batch(
    transport: RetryTransport,
    items: Sequence[T],
    query_builder: Callable[[T], Tuple[str, Optional[Dict[str, Any]]]],
    batch_size: int = 10,
    delay_between_batches: float = 0.5,
    monitor: Optional[RateLimitMonitor] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
    wait_threshold: float = 200,
) -> List[Dict[str, Any]]:
    """
    Ejecuta muchas llamadas GraphQL en ventanas de concurrencia acotada.

    Args:
        transport: Transporte con reintentos
        items: Elementos a procesar
        query_builder: Función item -> (query, variables)
        batch_size: Llamadas concurrentes por ventana
        delay_between_batches: Segundos entre ventanas (no tras la última)
        monitor: Monitor de rate limit (se crea uno si no se pasa)
        on_progress: Callback (completados, total) después de cada ventana
        wait_threshold: Puntos mínimos antes de iniciar una ventana

    Returns:
        List: Respuesta completa de cada llamada, en el orden de entrada
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    monitor = monitor or transport.monitor or RateLimitMonitor()
    results: List[Dict[str, Any]] = []
    total = len(items)

    async def run_one(item: T) -> Dict[str, Any]:
        query, variables = query_builder(item)
        response = await transport.execute(query, variables)
        monitor.update(ThrottleStatus.from_response(response))
        return response

    for start in range(0, total, batch_size):
        window = items[start : start + batch_size]

        if monitor.should_wait(wait_threshold):
            await monitor.wait_for_availability(wait_threshold)

        window_results = await asyncio.gather(*[run_one(item) for item in window])
        results.extend(window_results)

        completed = min(start + batch_size, total)
        if on_progress:
            on_progress(completed, total)

        if completed < total:
            await transport._sleep(delay_between_batches)

    return results
