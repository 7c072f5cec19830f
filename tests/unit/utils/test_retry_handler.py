"""
Tests unitarios para el transporte con reintentos y el control de rate limit.

Todas las esperas se inyectan, así que ningún test duerme de verdad.
"""

from unittest.mock import AsyncMock

import aiohttp
import pytest

from bulk_editor.utils.error_handler import RateLimitException, ShopifyAPIException, ValidationException
from bulk_editor.utils.retry_handler import (
    RateLimitMonitor,
    RetryPolicy,
    RetryTransport,
    ThrottleStatus,
    execute_batch,
    is_throttled,
)

THROTTLED = {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}
OK = {"data": {"shop": {"name": "Test"}}}


def _with_cost(available: float, maximum: float = 1000) -> dict:
    return {
        "data": {},
        "extensions": {
            "cost": {
                "requestedQueryCost": 10,
                "actualQueryCost": 8,
                "throttleStatus": {
                    "maximumAvailable": maximum,
                    "currentlyAvailable": available,
                    "restoreRate": 50,
                },
            }
        },
    }


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def policy():
    return RetryPolicy(max_retries=3, initial_delay=1.0, max_delay=30.0, jitter_ratio=0)


class TestRetryPolicy:
    """Tests para RetryPolicy."""

    def test_delay_doubles_per_attempt(self, policy):
        """Debe duplicar el delay en cada reintento."""
        assert [policy.calculate_delay(attempt) for attempt in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_delay_is_capped(self):
        """Debe respetar el delay máximo."""
        policy = RetryPolicy(initial_delay=10, max_delay=15, jitter_ratio=0)
        assert policy.calculate_delay(3) == 15

    def test_jitter_only_adds_time(self):
        """Debe sumar como mucho jitter_ratio del delay."""
        policy = RetryPolicy(initial_delay=1.0, jitter_ratio=0.3)
        for _ in range(20):
            assert 1.0 <= policy.calculate_delay(1) <= 1.3

    def test_retry_after_overrides_backoff(self, policy):
        """Debe usar retry_after cuando la excepción lo trae."""
        assert policy.calculate_delay(1, RateLimitException("slow down", retry_after=7)) == 7

    def test_should_retry_transient_errors_only(self, policy):
        """Debe reintentar errores de red y no errores de validación."""
        assert policy.should_retry(aiohttp.ClientConnectionError("reset"), 0)
        assert policy.should_retry(ShopifyAPIException("HTTP 502", api_response_code=502), 0)
        assert not policy.should_retry(ShopifyAPIException("bad", is_retryable=False), 0)
        assert not policy.should_retry(ValidationException("bad", field="x"), 0)
        assert not policy.should_retry(aiohttp.ClientConnectionError("reset"), 3)


class TestThrottleDetection:
    """Tests para is_throttled y ThrottleStatus."""

    def test_detects_throttled_code(self):
        """Debe detectar errores con código THROTTLED."""
        assert is_throttled(THROTTLED)
        assert not is_throttled(OK)
        assert not is_throttled({"errors": [{"message": "Field missing"}]})

    def test_reads_cost_extension(self):
        """Debe leer el throttleStatus de extensions.cost."""
        status = ThrottleStatus.from_response(_with_cost(420))
        assert status.available == 420
        assert status.maximum == 1000
        assert status.restore_rate == 50
        assert ThrottleStatus.from_response(OK) is None


class TestRetryTransport:
    """Tests para RetryTransport.execute."""

    @pytest.mark.asyncio
    async def test_throttled_then_success(self, policy, sleep):
        """Debe reintentar respuestas throttled hasta obtener una válida."""
        send = AsyncMock(side_effect=[THROTTLED, THROTTLED, OK])
        transport = RetryTransport(send, policy=policy, sleep=sleep)

        assert await transport.execute("query { shop { name } }") == OK
        assert send.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]
        assert transport.metrics["throttled_responses"] == 2

    @pytest.mark.asyncio
    async def test_persistent_throttling_raises_rate_limit(self, policy, sleep):
        """Debe lanzar RateLimitException tras agotar los reintentos."""
        send = AsyncMock(return_value=THROTTLED)
        transport = RetryTransport(send, policy=policy, sleep=sleep)

        with pytest.raises(RateLimitException):
            await transport.execute("query { shop { name } }")

        assert send.await_count == 4
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, policy, sleep):
        """Debe reintentar errores de conexión."""
        send = AsyncMock(side_effect=[aiohttp.ClientConnectionError("reset"), OK])
        transport = RetryTransport(send, policy=policy, sleep=sleep)

        assert await transport.execute("query") == OK
        assert transport.metrics["total_retries"] == 1

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self, policy, sleep):
        """Debe propagar sin reintentar errores no reintentables."""
        send = AsyncMock(side_effect=ShopifyAPIException("HTTP 401", api_response_code=401, is_retryable=False))
        transport = RetryTransport(send, policy=policy, sleep=sleep)

        with pytest.raises(ShopifyAPIException):
            await transport.execute("query")

        assert send.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_low_budget_warns_and_floor_sleeps(self, policy, sleep):
        """Debe avisar bajo el 20% y esperar bajo el piso de puntos."""
        warnings = []
        transport = RetryTransport(
            AsyncMock(return_value=_with_cost(50)),
            policy=policy,
            sleep=sleep,
            on_low_budget=lambda available, maximum: warnings.append((available, maximum)),
        )

        await transport.execute("query")

        assert warnings == [(50, 1000)]
        sleep.assert_awaited_once_with(policy.floor_sleep)

    @pytest.mark.asyncio
    async def test_healthy_budget_does_not_sleep(self, policy, sleep):
        """Debe continuar sin esperas con presupuesto suficiente."""
        monitor = RateLimitMonitor()
        transport = RetryTransport(AsyncMock(return_value=_with_cost(900)), policy=policy, monitor=monitor, sleep=sleep)

        await transport.execute("query")

        sleep.assert_not_awaited()
        assert monitor.available == 900

    @pytest.mark.asyncio
    async def test_run_retries_arbitrary_coroutines(self, policy, sleep):
        """Debe aplicar la misma política a llamadas no GraphQL."""
        upload = AsyncMock(side_effect=[aiohttp.ServerDisconnectedError(), "tmp/key"])
        transport = RetryTransport(AsyncMock(), policy=policy, sleep=sleep)

        assert await transport.run(upload, b"content") == "tmp/key"
        assert upload.await_count == 2


class TestRateLimitMonitor:
    """Tests para la estimación de puntos disponibles."""

    def test_estimate_restores_linearly_up_to_maximum(self):
        """Debe extrapolar con restoreRate sin superar el máximo."""
        now = [100.0]
        monitor = RateLimitMonitor(clock=lambda: now[0])
        monitor.update(ThrottleStatus.from_response(_with_cost(100)))

        now[0] += 2
        assert monitor.estimate_available() == 200
        now[0] += 100
        assert monitor.estimate_available() == 1000

    @pytest.mark.asyncio
    async def test_wait_for_availability_sleeps_needed_time(self, sleep):
        """Debe esperar el tiempo necesario para restaurar los puntos."""
        monitor = RateLimitMonitor(clock=lambda: 0.0, sleep=sleep)
        monitor.update(ThrottleStatus.from_response(_with_cost(50)))

        waited = await monitor.wait_for_availability(150)

        assert waited == 2.0
        sleep.assert_awaited_once_with(2.0)


class TestExecuteBatch:
    """Tests para execute_batch."""

    @pytest.mark.asyncio
    async def test_results_keep_input_order(self, policy, sleep):
        """Debe devolver las respuestas completas en el orden de entrada."""

        async def send(query, variables):
            return {"data": {"product": {"id": variables["id"]}}}

        transport = RetryTransport(send, policy=policy, sleep=sleep)
        progress = []

        results = await execute_batch(
            transport,
            ["a", "b", "c", "d", "e"],
            lambda item: ("query($id: ID!)", {"id": item}),
            batch_size=2,
            delay_between_batches=0.5,
            on_progress=lambda done, total: progress.append((done, total)),
        )

        assert [result["data"]["product"]["id"] for result in results] == ["a", "b", "c", "d", "e"]
        assert progress == [(2, 5), (4, 5), (5, 5)]
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_invalid_batch_size_is_rejected(self, policy):
        """Debe rechazar tamaños de lote menores a 1."""
        transport = RetryTransport(AsyncMock(), policy=policy)
        with pytest.raises(ValueError):
            await execute_batch(transport, ["a"], lambda item: ("query", None), batch_size=0)
