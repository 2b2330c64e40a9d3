# /orchestrator/services/ai_service.py

import json
import logging
import asyncio
from typing import Any, Optional, Type
from google import genai
from google.genai.types import GenerateContentConfig, HttpOptions
from openai import AsyncOpenAI
from pydantic import BaseModel

from orchestrator.config.settings import settings
from orchestrator.config import strings
from orchestrator.config.prompts import AI_SYSTEM_PROMPT
from orchestrator.utils.circuit_breaker import CircuitBreaker
from orchestrator.utils.metrics import ai_requests_counter
from orchestrator.utils.parsing import parse_or_default

# The completion collaborator. Gemini is tried first and OpenAI is the
# failover; callers only ever see text, a parsed JSON value or a fallback.

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """Raised when no configured provider produced a completion."""


class AIService:
    def __init__(self):
        if settings.gemini_api_key:
            http_options = HttpOptions(api_version='v1')
            self.gemini_client = genai.Client(api_key=settings.gemini_api_key, http_options=http_options)
            self.model_name = settings.gemini_model
            logger.info(f"Using Gemini model: {self.model_name}")
        else:
            self.gemini_client = None
            self.model_name = None

        if settings.openai_api_key:
            self.openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
        else:
            self.openai_client = None

        self.gemini_breaker = CircuitBreaker("gemini")
        self.openai_breaker = CircuitBreaker("openai")

    async def _gemini_complete(self, prompt: str, json_mode: bool) -> str:
        config = GenerateContentConfig(
            temperature=0.1 if json_mode else 0.7,
            system_instruction=AI_SYSTEM_PROMPT,
            response_mime_type="application/json" if json_mode else None,
        )
        response = await asyncio.to_thread(
            self.gemini_client.models.generate_content,
            model=self.model_name,
            contents=prompt,
            config=config
        )
        return (response.text or "").strip()

    async def _openai_complete(self, prompt: str, json_mode: bool) -> str:
        kwargs = {"response_format": {"type": "json_object"}} if json_mode else {}
        response = await self.openai_client.chat.completions.create(
            model=settings.openai_model,
            messages=[
                {"role": "system", "content": AI_SYSTEM_PROMPT},
                {"role": "user", "content": prompt}
            ],
            temperature=0.1 if json_mode else 0.7,
            **kwargs
        )
        return (response.choices[0].message.content or "").strip()

    async def complete(self, prompt: str, json_mode: bool = False) -> str:
        """
        Returns the completion text for `prompt`, trying Gemini first and
        falling back to OpenAI. Raises CompletionError if both fail or neither
        is configured.
        """
        label = "-json" if json_mode else ""

        if self.gemini_client:
            try:
                text = await asyncio.wait_for(
                    self.gemini_breaker.call(self._gemini_complete, prompt, json_mode),
                    timeout=settings.completion_timeout_seconds
                )
                if text:
                    ai_requests_counter.labels(model=f"gemini{label}", status="success").inc()
                    return text
            except Exception as e:
                logger.error(f"Gemini completion failed: {e}. Trying OpenAI fallback.")
                ai_requests_counter.labels(model=f"gemini{label}", status="error").inc()

        if self.openai_client:
            try:
                text = await asyncio.wait_for(
                    self.openai_breaker.call(self._openai_complete, prompt, json_mode),
                    timeout=settings.completion_timeout_seconds
                )
                if text:
                    ai_requests_counter.labels(model=f"openai{label}", status="success").inc()
                    return text
            except Exception as e:
                logger.error(f"OpenAI completion failed: {e}")
                ai_requests_counter.labels(model=f"openai{label}", status="error").inc()

        raise CompletionError("No completion provider produced a response.")

    async def generate_response(self, message: str, context: dict | None = None) -> str:
        """Free-text reply with a canned fallback; never raises."""
        prompt = message
        if context:
            serializable_context = json.dumps(context, default=str)
            prompt = f"Context: {serializable_context}\n\n{message}"
        try:
            return await self.complete(prompt)
        except CompletionError:
            return strings.COMPLETION_UNAVAILABLE

    async def get_ai_json_response(self, prompt: str) -> dict:
        """
        Returns the completion parsed as a JSON object.
        Raises CompletionError when no provider answers or the answer is not an object.
        """
        raw = await self.complete(f"{prompt}\n\nPlease respond with valid JSON only.", json_mode=True)
        parsed = parse_or_default(raw, None)
        if not isinstance(parsed, dict):
            raise CompletionError("Completion did not contain a JSON object.")
        return parsed

    async def get_json_or_default(self, prompt: str, default: Any, model: Optional[Type[BaseModel]] = None) -> Any:
        """parse-or-default over a JSON completion; provider failures also yield `default`."""
        try:
            raw = await self.complete(f"{prompt}\n\nPlease respond with valid JSON only.", json_mode=True)
        except CompletionError as e:
            logger.warning(f"JSON completion unavailable, using default: {e}")
            return parse_or_default(None, default)
        return parse_or_default(raw, default, model=model)


# Globally accessible instance
ai_service = AIService()
