"""
LLM Relay

Forwards an assembled prompt to an OpenAI-compatible chat completions endpoint
with streaming enabled and re-emits only the incremental text deltas, in the
order the upstream produced them, as soon as each frame is complete.

Failures before the first byte (no credential, connection refused, non-2xx
answer) raise a RelayError subclass so the caller can answer with an error
response instead of a stream. Failures after that raise UpstreamStreamError
out of the iterator so the outgoing response is aborted rather than ending as
if the completion had finished.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .exceptions import (
    RelayConfigurationError,
    UpstreamStatusError,
    UpstreamStreamError,
    UpstreamUnavailableError,
)
from .frame_parser import FrameParser

logger = logging.getLogger(__name__)


class RelayStream:
    """One live upstream completion; owns the HTTP client and response"""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self._client = client
        self._response = response
        self._parser = FrameParser()
        self._closed = False
        self.delta_count = 0

    @property
    def state(self):
        return self._parser.state

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iter_deltas()

    async def _iter_deltas(self) -> AsyncIterator[str]:
        try:
            async for text in self._response.aiter_text():
                for delta in self._parser.feed(text):
                    self.delta_count += 1
                    yield delta
                if self._parser.done:
                    break

            if not self._parser.done:
                for delta in self._parser.close():
                    self.delta_count += 1
                    yield delta
                logger.warning("Upstream closed the stream without a [DONE] sentinel")

            logger.info(f"Relay stream finished after {self.delta_count} deltas "
                        f"({self._parser.skipped_frames} frames skipped)")
        except httpx.HTTPError as e:
            logger.error(f"Upstream stream failed mid-transfer: {e}")
            raise UpstreamStreamError(f"Upstream stream failed: {e}") from e
        except (asyncio.CancelledError, GeneratorExit):
            logger.info(f"Client went away after {self.delta_count} deltas; dropping upstream stream")
            raise
        finally:
            await self.aclose()

    @property
    def closed(self) -> bool:
        return self._closed

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Deltas encoded for a raw byte response; closing it early releases the upstream"""
        deltas = self._iter_deltas()
        try:
            async for delta in deltas:
                yield delta.encode("utf-8")
        finally:
            await deltas.aclose()
            await self.aclose()

    async def collect(self) -> str:
        """Drain the stream and return the full text"""
        parts = []
        async for delta in self:
            parts.append(delta)
        return "".join(parts)

    async def aclose(self):
        """Release the upstream connection; safe to call more than once"""
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        await self._client.aclose()
        logger.debug("Upstream connection released")


class LLMRelay:
    """Streaming pass-through to the upstream chat completions API"""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        model: str,
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout or httpx.Timeout(60.0)
        self.transport = transport

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "LLMRelay":
        return cls(
            api_url=settings.llm_api_url,
            api_key=settings.openrouter_api_key,
            model=settings.llm_model,
            timeout=httpx.Timeout(settings.llm_timeout_read, connect=settings.llm_timeout_connect),
            transport=transport,
        )

    def build_payload(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": True,
        }

    async def open_stream(self, system_prompt: str, user_prompt: str) -> RelayStream:
        """Start the upstream completion; returns once a 2xx response has arrived"""
        if not self.api_key:
            raise RelayConfigurationError("OpenRouter API key is not configured.")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        request = client.build_request(
            "POST",
            self.api_url,
            json=self.build_payload(system_prompt, user_prompt),
            headers=headers,
        )

        logger.info(f"Opening upstream stream to {self.api_url} with model {self.model}")
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            logger.error(f"Cannot connect to {self.api_url}: {e}")
            raise UpstreamUnavailableError(f"Cannot connect to the AI service: {e}") from e

        if not response.is_success:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            await client.aclose()
            logger.warning(f"Upstream answered {response.status_code}: {body[:200]}")
            raise UpstreamStatusError(response.status_code, body)

        return RelayStream(client, response)
