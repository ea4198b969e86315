"""Unit tests for the error hierarchy, the Ok/Err result type and retry_transient."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.utils.errors import (
    FetchError,
    LecternError,
    ParseError,
    PersistenceError,
    ProviderAPIError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
)
from src.utils.result import Err, Ok
from src.utils.retry import is_transient, retry_transient


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "error_cls",
        [FetchError, ParseError, PersistenceError, RateLimitError, ProviderTimeoutError, ProviderAPIError],
    )
    def test_all_errors_are_lectern_errors(self, error_cls) -> None:
        assert issubclass(error_cls, LecternError)

    def test_provider_errors_share_base(self) -> None:
        for error_cls in (RateLimitError, ProviderTimeoutError, ProviderAPIError):
            assert issubclass(error_cls, ProviderError)

    def test_str_prefixes_provider(self) -> None:
        exc = RateLimitError(message="Too many requests", provider_name="cohere", retry_after_seconds=12)
        assert str(exc) == "[cohere] Too many requests"
        assert exc.retry_after_seconds == 12
        assert exc.message == "Too many requests"

    def test_str_without_provider(self) -> None:
        assert str(ParseError(message="No text")) == "No text"

    def test_status_codes(self) -> None:
        assert ProviderAPIError(status_code=503).status_code == 503
        assert FetchError(status_code=404).status_code == 404


class TestResult:
    def test_ok(self) -> None:
        result = Ok(5)
        assert result.is_ok and not result.is_err
        assert result.value == 5

    def test_err(self) -> None:
        error = FetchError(message="gone")
        result = Err(error)
        assert result.is_err and not result.is_ok
        assert result.error is error

    def test_frozen(self) -> None:
        result = Ok(1)
        with pytest.raises(AttributeError):
            result.value = 2  # type: ignore[misc]


class TestIsTransient:
    def test_server_errors_are_transient(self) -> None:
        assert is_transient(ProviderAPIError(status_code=502))
        assert is_transient(ProviderAPIError())

    def test_client_errors_rate_limits_and_timeouts_are_not(self) -> None:
        assert not is_transient(ProviderAPIError(status_code=400))
        assert not is_transient(RateLimitError())
        assert not is_transient(ProviderTimeoutError())


class TestRetryTransient:
    @pytest.mark.asyncio
    async def test_returns_first_success(self) -> None:
        call = AsyncMock(return_value="ok")
        sleep = AsyncMock()
        assert await retry_transient(call, sleep=sleep) == "ok"
        call.assert_awaited_once()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self) -> None:
        call = AsyncMock(side_effect=[ProviderAPIError(status_code=500), ProviderAPIError(), "done"])
        sleep = AsyncMock()
        assert await retry_transient(call, max_retries=3, base_delay=1.0, sleep=sleep) == "done"
        assert call.await_count == 3
        delays = [c.args[0] for c in sleep.await_args_list]
        assert 1.0 <= delays[0] <= 1.1
        assert 2.0 <= delays[1] <= 2.2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        call = AsyncMock(side_effect=ProviderAPIError(status_code=503))
        with pytest.raises(ProviderAPIError):
            await retry_transient(call, max_retries=2, sleep=AsyncMock())
        assert call.await_count == 3

    @pytest.mark.asyncio
    async def test_rate_limit_surfaces_immediately(self) -> None:
        call = AsyncMock(side_effect=RateLimitError(retry_after_seconds=30))
        sleep = AsyncMock()
        with pytest.raises(RateLimitError):
            await retry_transient(call, sleep=sleep)
        call.assert_awaited_once()
        sleep.assert_not_awaited()
