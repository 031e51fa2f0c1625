"""
AiNote Backend — Gemini Service Unit Tests (Mocked)
=====================================================

What:  Tests for GeminiService with the google-generativeai SDK patched out.
How:   Patches app.services.gemini_service.genai; no network calls are made.

What we test:
    ✅ Connection attempt configures the SDK and verifies the model
    ✅ Connection failures map onto FailureReason
    ✅ suggest() returns the stripped text and retries transient errors
    ✅ Empty, blocked and timed-out responses raise AIServiceError
    ❌ Real API calls
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from app.exceptions import AIServiceError
from app.services.dependency_base import DependencyState, FailureReason
from app.services.gemini_service import (
    GeminiService,
    ModelNotAvailableError,
    classify_gemini_error,
)


@pytest.fixture
def mock_genai():
    with patch("app.services.gemini_service.genai") as genai:
        genai.list_models.return_value = [
            SimpleNamespace(name="models/gemini-1.5-flash"),
            SimpleNamespace(name="models/gemini-1.5-pro"),
        ]
        model = MagicMock()
        model.generate_content_async = AsyncMock(
            return_value=SimpleNamespace(text="  Learn about QUIC next.  ")
        )
        genai.GenerativeModel.return_value = model
        yield genai


async def _connected(settings) -> GeminiService:
    service = GeminiService()
    service.configure(settings)
    await service.connect()
    return service


class TestGeminiConnect:
    @pytest.mark.asyncio
    async def test_connect_ready(self, mock_genai, make_settings):
        service = await _connected(make_settings(ai_subject="networking", ai_language="German"))

        assert service.state is DependencyState.READY
        mock_genai.configure.assert_called_once_with(api_key="test-key-not-real")
        kwargs = mock_genai.GenerativeModel.call_args.kwargs
        assert kwargs["model_name"] == "gemini-1.5-flash"
        assert "networking" in kwargs["system_instruction"]
        assert "German" in kwargs["system_instruction"]

    @pytest.mark.asyncio
    async def test_unknown_model_is_resource_absent(self, mock_genai, make_settings):
        service = await _connected(make_settings(gemini_model="gemini-0-imaginary"))

        assert service.state is DependencyState.UNREACHABLE
        assert service.reason is FailureReason.RESOURCE_ABSENT

    @pytest.mark.asyncio
    async def test_verification_can_be_disabled(self, mock_genai, make_settings):
        service = await _connected(make_settings(ai_verify_on_startup=False))

        assert service.is_ready()
        mock_genai.list_models.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_key_is_auth_rejected(self, mock_genai, make_settings):
        mock_genai.list_models.side_effect = google_exceptions.PermissionDenied("API key revoked")

        service = await _connected(make_settings())

        assert service.state is DependencyState.UNREACHABLE
        assert service.reason is FailureReason.AUTH_REJECTED

    @pytest.mark.asyncio
    async def test_missing_key_never_touches_sdk(self, mock_genai, make_settings):
        service = await _connected(make_settings(gemini_api_key=""))

        assert service.state is DependencyState.UNCONFIGURED
        mock_genai.configure.assert_not_called()

    def test_describe_target_masks_key(self, make_settings):
        service = GeminiService()
        service.configure(make_settings())
        assert "test-key-not-real" not in str(service.describe_target())


class TestClassifyGeminiError:
    @pytest.mark.parametrize(
        "exc, expected",
        [
            (google_exceptions.Unauthenticated("no credentials"), FailureReason.AUTH_REJECTED),
            (google_exceptions.PermissionDenied("forbidden"), FailureReason.AUTH_REJECTED),
            (google_exceptions.InvalidArgument("API key not valid. Please pass a valid API key."), FailureReason.AUTH_REJECTED),
            (google_exceptions.NotFound("model not found"), FailureReason.RESOURCE_ABSENT),
            (ModelNotAvailableError("models/x"), FailureReason.RESOURCE_ABSENT),
            (google_exceptions.ServiceUnavailable("unavailable"), FailureReason.ENDPOINT_UNREACHABLE),
            (google_exceptions.DeadlineExceeded("deadline"), FailureReason.ENDPOINT_UNREACHABLE),
            (ConnectionRefusedError("refused"), FailureReason.ENDPOINT_UNREACHABLE),
            (google_exceptions.InvalidArgument("bad request"), FailureReason.OTHER),
            (ValueError("unexpected"), FailureReason.OTHER),
        ],
    )
    def test_classification(self, exc, expected):
        assert classify_gemini_error(exc) is expected


class TestGeminiSuggest:
    @pytest.mark.asyncio
    async def test_suggest_returns_stripped_text(self, mock_genai, make_settings):
        service = await _connected(make_settings(ai_max_output_tokens=500))

        result = await service.suggest("Studied TCP today")

        assert result == "Learn about QUIC next."
        model = mock_genai.GenerativeModel.return_value
        call = model.generate_content_async.call_args
        assert call.args[0] == "Studied TCP today"
        assert call.kwargs["generation_config"] == {"max_output_tokens": 500}

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self, mock_genai, make_settings):
        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async.side_effect = [
            google_exceptions.ServiceUnavailable("overloaded"),
            SimpleNamespace(text="Try learning DNS."),
        ]
        service = await _connected(make_settings())

        assert await service.suggest("note") == "Try learning DNS."
        assert model.generate_content_async.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_ai_service_error(self, mock_genai, make_settings):
        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async.side_effect = google_exceptions.ServiceUnavailable("down")
        service = await _connected(make_settings(retry_max_attempts=3))

        with pytest.raises(AIServiceError):
            await service.suggest("note")
        assert model.generate_content_async.await_count == 3

    @pytest.mark.asyncio
    async def test_empty_response_is_not_retried(self, mock_genai, make_settings):
        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async.return_value = SimpleNamespace(text="   ")
        service = await _connected(make_settings())

        with pytest.raises(AIServiceError):
            await service.suggest("note")
        assert model.generate_content_async.await_count == 1

    @pytest.mark.asyncio
    async def test_blocked_response_raises_ai_service_error(self, mock_genai, make_settings):
        class BlockedResponse:
            @property
            def text(self):
                raise ValueError("response was blocked")

        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async.return_value = BlockedResponse()
        service = await _connected(make_settings())

        with pytest.raises(AIServiceError):
            await service.suggest("note")

    @pytest.mark.asyncio
    async def test_timeout_raises_ai_service_error(self, mock_genai, make_settings):
        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        model = mock_genai.GenerativeModel.return_value
        model.generate_content_async = hang
        service = await _connected(make_settings(ai_timeout_seconds=0.05, retry_max_attempts=1))

        with pytest.raises(AIServiceError):
            await service.suggest("note")

    @pytest.mark.asyncio
    async def test_suggest_requires_connection(self, make_settings):
        service = GeminiService()
        service.configure(make_settings(gemini_api_key=""))

        with pytest.raises(AIServiceError):
            await service.suggest("note")
