"""OpenAI-backed evaluator client.

Sends the module's system prompt plus the input payload (photos as image
parts, everything else as JSON text) to the chat completions API in JSON
mode, and decodes the answer. Validation is left to the gateway.
"""

import contextlib
import json
import re
import time
from typing import Any

import openai
import structlog
from openai import AsyncOpenAI

from expertise.core.pricing import ModuleType
from expertise.evaluator.client import EvaluatorClient
from expertise.evaluator.config import EvaluatorConfig
from expertise.evaluator.errors import (
    EvaluatorAuthenticationError,
    EvaluatorError,
    EvaluatorMalformedResponseError,
    EvaluatorRateLimitError,
    EvaluatorTimeoutError,
    EvaluatorUnavailableError,
    UnsupportedModuleError,
)
from expertise.evaluator.prompts import system_prompt_for

logger = structlog.get_logger()

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


def _classify_openai_error(error: Exception) -> EvaluatorError:
    """Map OpenAI SDK exceptions to the evaluator error taxonomy.

    Returns an EvaluatorError subclass instance (does not raise).
    The caller raises via ``raise _classify_openai_error(e) from e``.
    """
    if isinstance(error, openai.RateLimitError):
        retry_after = None
        if getattr(error, "response", None) is not None:
            retry_header = error.response.headers.get("retry-after")
            if retry_header is not None:
                with contextlib.suppress(ValueError):
                    retry_after = float(retry_header)
        return EvaluatorRateLimitError(str(error), retry_after_seconds=retry_after)

    if isinstance(error, openai.AuthenticationError):
        return EvaluatorAuthenticationError(str(error))

    if isinstance(error, openai.APITimeoutError):
        return EvaluatorUnavailableError(f"OpenAI request timed out: {error}")

    if isinstance(error, openai.APIConnectionError | openai.InternalServerError):
        return EvaluatorUnavailableError(str(error))

    return EvaluatorError(str(error))


def extract_json_object(content: str | None) -> Any:
    """Decode a model answer that should be one JSON object.

    Tries, in order: the whole text, a fenced ```json block, and the span
    from the first "{" to the last "}".

    Args:
        content: Raw model output.

    Returns:
        The decoded object.

    Raises:
        EvaluatorMalformedResponseError: If no candidate decodes.
    """
    if not content or not content.strip():
        raise EvaluatorMalformedResponseError("Evaluator returned an empty response")

    candidates = [content.strip()]
    fenced = _FENCED_JSON.search(content)
    if fenced:
        candidates.append(fenced.group(1))
    start, end = content.find("{"), content.rfind("}")
    if start != -1 and end > start:
        candidates.append(content[start : end + 1])

    for candidate in candidates:
        with contextlib.suppress(json.JSONDecodeError):
            return json.loads(candidate)

    raise EvaluatorMalformedResponseError("Evaluator response is not valid JSON")


def _build_user_content(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """Build the multimodal user message: photos as image parts, rest as text."""
    image_urls: list[str] = list(payload.get("image_urls") or [])
    context = {k: v for k, v in payload.items() if k != "image_urls"}
    parts: list[dict[str, Any]] = [
        {"type": "text", "text": json.dumps(context, ensure_ascii=False, default=str)}
    ]
    parts.extend(
        {"type": "image_url", "image_url": {"url": url, "detail": "high"}}
        for url in image_urls
    )
    return parts


class OpenAIEvaluatorClient(EvaluatorClient):
    """Evaluator backed by OpenAI chat completions in JSON mode."""

    def __init__(self, config: EvaluatorConfig) -> None:
        """Initialize the client.

        Args:
            config: Evaluator configuration with the OpenAI API key.
        """
        self.config = config
        self.client = AsyncOpenAI(api_key=config.openai_api_key, max_retries=0)

    @property
    def provider_name(self) -> str:
        return "openai"

    def model_for(self, module: ModuleType) -> str:
        return self.config.model_routing.get(module.value, self.config.model)

    async def evaluate(
        self,
        module: ModuleType,
        payload: dict[str, Any],
        timeout_seconds: float,
    ) -> Any:
        """Run one analysis through the chat completions API.

        Args:
            module: Which analysis to run.
            payload: Module input (image_urls plus vehicle metadata).
            timeout_seconds: Transport timeout for the request.

        Returns:
            Decoded JSON object from the model.

        Raises:
            UnsupportedModuleError: If no prompt exists for the module.
            EvaluatorError: Subclass mapped from the SDK failure.
        """
        prompt = system_prompt_for(module)
        if prompt is None:
            raise UnsupportedModuleError(f"No evaluator prompt for '{module.value}'")

        model = self.model_for(module)
        logger.info(
            "evaluator_request_start",
            provider="openai",
            model=model,
            module=module.value,
        )
        start_time = time.monotonic()

        try:
            response = await self.client.chat.completions.create(
                model=model,
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": prompt},
                    {"role": "user", "content": _build_user_content(payload)},
                ],
                timeout=timeout_seconds,
            )
        except openai.APITimeoutError as e:
            logger.error(
                "evaluator_request_failed",
                provider="openai",
                model=model,
                module=module.value,
                error_type="timeout",
            )
            raise EvaluatorTimeoutError(timeout_seconds) from e
        except openai.OpenAIError as e:
            logger.error(
                "evaluator_request_failed",
                provider="openai",
                model=model,
                module=module.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise _classify_openai_error(e) from e

        latency_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "evaluator_request_complete",
            provider="openai",
            model=model,
            module=module.value,
            input_tokens=response.usage.prompt_tokens if response.usage else None,
            output_tokens=response.usage.completion_tokens if response.usage else None,
            latency_ms=latency_ms,
        )

        if not response.choices:
            raise EvaluatorMalformedResponseError("Evaluator returned no choices")
        return extract_json_object(response.choices[0].message.content)
