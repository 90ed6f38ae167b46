"""
Provider-agnostic async LLM client for the classification service.

Supports Anthropic and OpenAI. Unlike a plain text-generation wrapper, every
call reports the HTTP status it ended with, because the classification queue
treats throttling (429) and overload (529/503) differently from other
failures. SDK-level retries are disabled; retry policy lives in the queue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("chatwatch.common.llm_client")


@dataclass
class LLMResponse:
    """Outcome of one call to the provider."""
    status_code: int
    text: str = ""
    retry_after: Optional[float] = None  # seconds, from the retry-after header

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class LLMTransportError(Exception):
    """The request never produced an HTTP response (timeout, connection reset)."""
    pass


def _header_retry_after(response) -> Optional[float]:
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class LLMClient:
    """Unified async text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "anthropic",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "anthropic").lower()
        self.model = model
        self._client = None
        self._sdk = None

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.AsyncAnthropic(api_key=anthropic_api_key, max_retries=0)
                self._sdk = anthropic
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import openai

                self._client = openai.AsyncOpenAI(api_key=openai_api_key, max_retries=0)
                self._sdk = openai
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 1024,
        timeout: float = 30.0,
    ) -> LLMResponse:
        """Send one prompt and return the status and text.

        Raises:
            RuntimeError: the client is not available
            LLMTransportError: no HTTP response was received
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        try:
            text = await self._create(prompt, system=system, max_tokens=max_tokens, timeout=timeout)
        except self._sdk.APIStatusError as e:
            response = getattr(e, "response", None)
            body = response.text if response is not None else str(e)
            return LLMResponse(
                status_code=e.status_code,
                text=body,
                retry_after=_header_retry_after(response),
            )
        except self._sdk.APIConnectionError as e:
            raise LLMTransportError(str(e)) from e

        return LLMResponse(status_code=200, text=text)

    async def _create(self, prompt: str, *, system: Optional[str], max_tokens: int, timeout: float) -> str:
        if self.provider == "anthropic":
            kwargs = {}
            if system:
                kwargs["system"] = system
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
                **kwargs,
            )
            if not response.content:
                return ""
            return response.content[0].text.strip()

        if self.provider == "openai":
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
            response = await self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=messages,
                timeout=timeout,
            )
            return (response.choices[0].message.content or "").strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")
