"""
LLM Client for the Perplexity chat completions API
"""
import time
from typing import Optional, Dict, Any
from enum import Enum

import requests

from config import settings
from utils.content_flattener import extract_reply_text
from utils.exceptions import ActionUnavailable, ProviderError
from utils.logger import logger
from utils.retry_decorator import with_retry


class LLMProvider(str, Enum):
    """LLM Provider types"""
    PERPLEXITY = "perplexity"


class LLMClient:
    """
    Thin client over one chat-completions endpoint

    Request construction is trivial; the response is reduced to its flattened
    ``choices[0].message.content`` so extractors only ever see plain text.
    Transport failures are retried with backoff, HTTP errors are not.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.PERPLEXITY_API_KEY
        self.api_url = api_url or settings.PERPLEXITY_API_URL
        self.timeout = timeout or settings.PERPLEXITY_TIMEOUT
        self.session = session or requests.Session()

        if self.is_available():
            logger.info(f"Perplexity client initialized (default model: {settings.PERPLEXITY_MODEL})")
        else:
            logger.info("PERPLEXITY_API_KEY not configured, AI actions will be unavailable")

    def is_available(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @with_retry()
    def _post(self, body: Dict[str, Any]) -> requests.Response:
        return self.session.post(
            self.api_url,
            json=body,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            timeout=self.timeout,
        )

    def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Send a single user message and return the flattened reply

        Args:
            prompt: User message content
            model: Model name (defaults to PERPLEXITY_MODEL)
            temperature: Sampling temperature

        Returns:
            Response dict with the flattened content and call metadata

        Raises:
            ActionUnavailable: no API key configured
            ProviderError: non-2xx status, unreadable body, or transport failure
        """
        if not self.is_available():
            raise ActionUnavailable(
                "Configura PERPLEXITY_API_KEY en tu archivo .env para usar la investigación."
            )

        model = model or settings.PERPLEXITY_MODEL
        temperature = temperature if temperature is not None else settings.PERPLEXITY_TEMPERATURE
        body = {
            "model": model,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

        start_time = time.time()
        try:
            response = self._post(body)
        except requests.RequestException as e:
            logger.error(f"Perplexity request failed: {e}")
            raise ProviderError(detail=str(e)) from e

        if not response.ok:
            logger.error(f"Perplexity API error: HTTP {response.status_code}")
            raise ProviderError(detail=f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(detail="response body is not JSON") from e

        latency = time.time() - start_time
        usage = payload.get("usage") if isinstance(payload, dict) else None
        usage = usage if isinstance(usage, dict) else {}

        return {
            "content": extract_reply_text(payload),
            "provider": LLMProvider.PERPLEXITY.value,
            "model": model,
            "latency": latency,
            "tokens": {
                "input": usage.get("prompt_tokens") or 0,
                "output": usage.get("completion_tokens") or 0,
            },
        }


# Global LLM client instance
llm_client = LLMClient()
