from typing import Optional
import logging

import httpx

from ..config import settings
from ..core.errors import CompletionError, ConfigurationError

logger = logging.getLogger("semse.llm")


class CompletionClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        if not self.api_key:
            raise ConfigurationError("No API key configured for the completion service.")
        self.model = model or settings.completion_model
        self.url = f"{(base_url or settings.openai_base_url).rstrip('/')}/chat/completions"
        self.timeout = timeout
        self._transport = transport

    async def complete(self, prompt: str, temperature: Optional[float] = None) -> str:
        """
        Send a single user message and return the assistant's text content.

        Raises CompletionError on transport failures or an unexpected
        response shape.
        """
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if temperature is not None:
            payload["temperature"] = temperature

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.post(
                    self.url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error("Completion request failed (%s): %s", type(exc).__name__, exc)
                raise CompletionError(
                    f"Completion request failed: {type(exc).__name__}"
                ) from exc

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise CompletionError("Malformed completion response.") from exc

        if not isinstance(content, str):
            raise CompletionError("Completion response has no text content.")
        return content
