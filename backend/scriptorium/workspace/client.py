"""
Async HTTP client for the Scriptorium API

Unwraps the `{"success": true, "data": ...}` envelope and raises
ScriptoriumAPIError for error envelopes. The client owns its
httpx.AsyncClient: open it with `async with` for the lifetime of a view and
it is closed when the view goes away.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:9876"

# Python keyword arguments -> JSON field names used by the API
CAMEL_CASE_FIELDS = {
    "system_instruction": "systemInstruction",
    "plot_summary": "plotSummary",
    "prompt_type": "promptType",
    "story_context": "storyContext",
    "chapter_number": "chapterNumber",
    "recent_chapters_content": "recentChaptersContent",
    "part_context": "partContext",
}


class ScriptoriumAPIError(Exception):
    """An API call answered with an error status or envelope"""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


def to_wire(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {CAMEL_CASE_FIELDS.get(key, key): value for key, value in fields.items()}


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return response.reason_phrase


class ScriptoriumClient:
    """Typed access to the chapter, part, story and AI endpoints"""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        self.base_url = base_url
        self._http = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=timeout or httpx.Timeout(30.0, read=None),
        )

    async def __aenter__(self) -> "ScriptoriumClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        response = await self._http.request(method, path, json=json)
        if response.is_error:
            raise ScriptoriumAPIError(response.status_code, _error_message(response))

        payload = response.json()
        if not payload.get("success"):
            raise ScriptoriumAPIError(response.status_code, payload.get("error") or "Request failed")
        return payload.get("data")

    # Chapters
    async def list_chapters(self) -> List[dict]:
        return await self._request("GET", "/chapters")

    async def create_chapter(self, title: str, content: str, order: int) -> dict:
        return await self._request("POST", "/chapters", json={"title": title, "content": content, "order": order})

    async def update_chapter(self, chapter_id: int, **fields) -> dict:
        return await self._request("PUT", f"/chapters/{chapter_id}", json=to_wire(fields))

    async def delete_chapter(self, chapter_id: int):
        return await self._request("DELETE", f"/chapters/{chapter_id}")

    # Parts
    async def list_parts(self) -> List[dict]:
        return await self._request("GET", "/parts")

    async def create_part(self, **fields) -> dict:
        return await self._request("POST", "/parts", json=to_wire(fields) if fields else None)

    async def update_part(self, part_id: int, **fields) -> dict:
        return await self._request("PUT", f"/parts/{part_id}", json=to_wire(fields))

    async def delete_part(self, part_id: int):
        return await self._request("DELETE", f"/parts/{part_id}")

    # Story context
    async def get_story(self) -> dict:
        return await self._request("GET", "/story")

    async def update_story(self, plot_summary: str) -> dict:
        return await self._request("PUT", "/story", json={"plotSummary": plot_summary})

    # AI streams
    async def _stream(self, path: str, payload: Dict[str, Any]) -> AsyncIterator[str]:
        async with self._http.stream("POST", path, json=to_wire(payload)) as response:
            if response.is_error:
                await response.aread()
                raise ScriptoriumAPIError(response.status_code, _error_message(response))
            async for text in response.aiter_text():
                if text:
                    yield text

    def stream_ai(self, **payload) -> AsyncIterator[str]:
        """Chapter critique/summary; yields text as the server flushes it"""
        return self._stream("/ai", payload)

    def stream_part_ai(self, **payload) -> AsyncIterator[str]:
        return self._stream("/ai/part", payload)
