"""
AiNote Backend — Google Gemini Provider Handle
================================================

What:  The AI-provider DependencyHandle backed by Google Gemini, plus the
       completion call used by the annotate workflow.
How:   _open() configures the SDK with the API key, builds the model with
       the fixed system instruction and (optionally) lists models to verify
       the key and the configured model name. suggest() sends the user's
       note and returns the suggestion text.
Who:   Registered with ConnectionSupervisor at startup; NoteWorkflow calls
       suggest() in phase 1 of annotate_note().

Resilience:
    1. Every completion attempt is bounded by AI_TIMEOUT_SECONDS (the SDK
       request timeout plus asyncio.wait_for around it)
    2. Transient provider errors are retried with tenacity (exponential
       backoff with jitter, RETRY_MAX_ATTEMPTS in total)
    3. Anything else (empty or blocked response, auth failure mid-flight)
       fails immediately with AIServiceError
"""

import asyncio
import logging
import socket
import time
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.exceptions import AIServiceError
from app.middleware.request_id import request_id_var
from app.services.dependency_base import (
    MASK,
    Dependency,
    DependencyHandle,
    FailureReason,
    iter_exception_chain,
)

logger = logging.getLogger(__name__)


SYSTEM_INSTRUCTION_TEMPLATE = (
    "You are an expert in {subject}. Based on the note provided by the user, "
    "recommend exactly one related topic the user could learn next. "
    "Write at least {min_sentences} sentences and answer in {language}."
)

# Errors worth another attempt within the same request
TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.ResourceExhausted,
    google_exceptions.InternalServerError,
    ConnectionError,
    asyncio.TimeoutError,
    TimeoutError,
)


class ModelNotAvailableError(Exception):
    """The configured model is not offered to this API key."""

    def __init__(self, model_name: str):
        super().__init__(f"model '{model_name}' is not available")
        self.model_name = model_name


def _list_model_names() -> List[str]:
    return [m.name for m in genai.list_models()]


def classify_gemini_error(exc: BaseException) -> FailureReason:
    """Map a Gemini connection failure onto a FailureReason."""
    for e in iter_exception_chain(exc):
        if isinstance(e, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)):
            return FailureReason.AUTH_REJECTED
        # An invalid key is reported as 400 "API key not valid"
        if isinstance(e, google_exceptions.InvalidArgument) and "api key" in str(e).lower():
            return FailureReason.AUTH_REJECTED
        if isinstance(e, (google_exceptions.NotFound, ModelNotAvailableError)):
            return FailureReason.RESOURCE_ABSENT
        if isinstance(
            e,
            (
                google_exceptions.ServiceUnavailable,
                google_exceptions.DeadlineExceeded,
                google_exceptions.RetryError,
                socket.gaierror,
                OSError,
                TimeoutError,
            ),
        ):
            return FailureReason.ENDPOINT_UNREACHABLE
    return FailureReason.OTHER


class GeminiService(DependencyHandle):
    """
    Google Gemini as the AI completion provider.

    Required settings: GEMINI_API_KEY.

    The SDK keeps the API key in module-level state (genai.configure), so
    one GeminiService per process is expected.
    """

    name = Dependency.AI_PROVIDER
    required_settings = ("gemini_api_key",)

    def __init__(self) -> None:
        super().__init__()
        self.model: Optional[Any] = None

    def system_instruction(self) -> str:
        s = self._settings
        return SYSTEM_INSTRUCTION_TEMPLATE.format(
            subject=s.ai_subject,
            language=s.ai_language,
            min_sentences=s.ai_min_sentences,
        )

    async def _open(self) -> None:
        s = self._settings
        genai.configure(api_key=s.gemini_api_key)
        model = genai.GenerativeModel(
            model_name=s.gemini_model,
            system_instruction=self.system_instruction(),
        )

        if s.ai_verify_on_startup:
            # list_models is a blocking call and costs no tokens
            available = await asyncio.to_thread(_list_model_names)
            target = f"models/{s.gemini_model}"
            if target not in available:
                raise ModelNotAvailableError(target)

        self.model = model

    def classify(self, exc: BaseException) -> FailureReason:
        return classify_gemini_error(exc)

    async def _release(self) -> None:
        self.model = None

    def describe_target(self) -> Dict[str, Any]:
        s = self._settings
        if s is None:
            return {}
        return {"model": s.gemini_model, "api_key": MASK}

    async def suggest(self, content: str) -> str:
        """
        Ask the model for one related-topic suggestion for ``content``.

        Returns:
            The suggestion text, stripped; never empty.

        Raises:
            AIServiceError: provider not connected, timeout, exhausted
                retries, blocked or empty response.
        """
        if not self.is_ready() or self.model is None:
            raise AIServiceError(
                message="The AI service is not connected",
                context={"state": self.state.value},
            )

        s = self._settings
        rid = request_id_var.get("")
        start_time = time.perf_counter()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(s.retry_max_attempts),
            wait=wait_exponential_jitter(
                initial=s.retry_min_wait,
                max=s.retry_max_wait,
                jitter=1,
            ),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        try:
            suggestion = await retrying(self._generate, content)
        except AIServiceError:
            raise
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "[%s] Gemini suggestion failed after %.0fms: %s: %s",
                rid,
                duration_ms,
                type(e).__name__,
                str(e),
            )
            raise AIServiceError(
                message="The AI service did not return a suggestion. Please try again later.",
                context={"error_type": type(e).__name__},
            ) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "[%s] Gemini suggestion completed in %.0fms, %d chars",
            rid,
            duration_ms,
            len(suggestion),
        )
        return suggestion

    async def _generate(self, content: str) -> str:
        s = self._settings
        response = await asyncio.wait_for(
            self.model.generate_content_async(
                content,
                generation_config={"max_output_tokens": s.ai_max_output_tokens},
                request_options={"timeout": s.ai_timeout_seconds},
            ),
            timeout=s.ai_timeout_seconds,
        )

        # response.text raises ValueError when the candidate was blocked
        text = (response.text or "").strip()
        if not text:
            raise AIServiceError(
                message="The AI service returned an empty suggestion",
                context={"model": s.gemini_model},
            )
        return text
