"""
Cloudflare Workers AI client.

Runs chat-style text generation against ``/accounts/{account}/ai/run/{model}``.
Each call carries a hard deadline; there is no retry at this layer.
"""
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..config import Settings
from ..exceptions import ModelInvocationError
from ..logger import logger


class WorkersAIClient:
    def __init__(
        self,
        account_id: str,
        api_token: str,
        model: str,
        base_url: str = "https://api.cloudflare.com/client/v4",
        timeout_seconds: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_id = account_id
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._headers = {"Authorization": f"Bearer {api_token}"}
        self._transport = transport

    @property
    def run_url(self) -> str:
        return f"{self.base_url}/accounts/{self.account_id}/ai/run/{self.model}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=self.timeout_seconds,
            transport=self._transport,
        )

    async def generate(self, messages: List[Dict[str, str]], options: Optional[Dict[str, Any]] = None) -> Any:
        """Run the model once and return ``result.response`` (text, or an object in JSON-schema mode)."""
        body = {"messages": messages, **(options or {})}
        logger.info("Calling language model", extra={"model": self.model, "message_count": len(messages)})
        try:
            async with self._client() as client:
                response = await client.post(self.run_url, json=body)
        except httpx.TimeoutException:
            raise ModelInvocationError(f"Language model call timed out after {self.timeout_seconds}s")
        except httpx.HTTPError as e:
            raise ModelInvocationError(f"Language model call failed: {e}")

        if response.status_code >= 400:
            raise ModelInvocationError(
                f"Language model call failed with HTTP {response.status_code}: {response.text[:500]}"
            )

        try:
            payload = response.json()
        except ValueError:
            raise ModelInvocationError("Language model returned a non-JSON response")

        if not payload.get("success", True):
            errors = payload.get("errors") or []
            raise ModelInvocationError(f"Language model reported failure: {errors}")

        result = payload.get("result") or {}
        if "response" not in result or result["response"] is None:
            raise ModelInvocationError("Language model returned no response")

        usage = result.get("usage") or {}
        logger.info("Language model call completed", extra={"model": self.model, "usage": usage})
        return result["response"]

    async def stream(self, messages: List[Dict[str, str]], options: Optional[Dict[str, Any]] = None) -> AsyncIterator[str]:
        """Yield text chunks in generation order from the server-sent event stream."""
        body = {"messages": messages, **(options or {}), "stream": True}
        try:
            async with self._client() as client:
                async with client.stream("POST", self.run_url, json=body) as response:
                    if response.status_code >= 400:
                        detail = (await response.aread()).decode("utf-8", errors="replace")
                        raise ModelInvocationError(
                            f"Language model stream failed with HTTP {response.status_code}: {detail[:500]}"
                        )
                    async for line in response.aiter_lines():
                        line = line.strip()
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if data == "[DONE]":
                            break
                        try:
                            event = json.loads(data)
                        except json.JSONDecodeError:
                            logger.warning("Skipping malformed stream event", extra={"event": data[:200]})
                            continue
                        chunk = event.get("response")
                        if chunk:
                            yield chunk
        except httpx.TimeoutException:
            raise ModelInvocationError(f"Language model stream timed out after {self.timeout_seconds}s")
        except httpx.HTTPError as e:
            raise ModelInvocationError(f"Language model stream failed: {e}")


def build_model_client(settings: Settings) -> Optional[WorkersAIClient]:
    """Client from settings, or None when credentials are not configured."""
    if not settings.CF_ACCOUNT_ID or not settings.CF_API_TOKEN:
        return None
    return WorkersAIClient(
        account_id=settings.CF_ACCOUNT_ID,
        api_token=settings.CF_API_TOKEN,
        model=settings.CF_AI_MODEL,
        base_url=settings.CF_AI_BASE_URL,
        timeout_seconds=settings.MODEL_TIMEOUT_SECONDS,
    )
