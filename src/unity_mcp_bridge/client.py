"""HTTP client for the Unity editor's MCP endpoint, and its exceptions.

Unity serves plain JSON-RPC at ``POST {url}/api/mcp`` and a liveness probe at
``GET {url}/health``. ``UnityHttpBackend`` makes those calls with httpx, giving
each one its own timeout, and maps transport failures onto the exception
hierarchy below so the orchestrator can tell "Unity is gone" apart from
"Unity answered with an error".
"""

from __future__ import annotations

import logging

from typing import Any

from httpx import AsyncClient, HTTPStatusError, InvalidURL, RequestError, Timeout, TimeoutException

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ClientError(Exception):
    """Custom exception for client errors."""


class ServerNotRunningError(ClientError):
    """Raised when the Unity editor is not running or unreachable."""


class RequestTimeoutError(ServerNotRunningError):
    """Raised when Unity did not answer within the call's time budget."""

    def __init__(self, timeout_ms: float):
        self.timeout_ms = timeout_ms
        super().__init__(f"Request timeout after {format_ms(timeout_ms)}ms")


class UnityRpcError(ClientError):
    """Unity answered with a JSON-RPC ``error`` object."""

    def __init__(self, code: Any = None, message: str | None = None):
        self.code = code
        self.message = message or "Unknown JSON-RPC error"
        super().__init__(self.describe())

    @classmethod
    def from_payload(cls, error: Any) -> UnityRpcError:
        if isinstance(error, dict):
            message = error.get("message")
            return cls(error.get("code"), message if isinstance(message, str) else None)
        return cls(None, str(error))

    def describe(self) -> str:
        details = f" (code: {self.code})" if self.code else ""
        return f"Unity JSON-RPC error{details}: {self.message}"


class MalformedResponseError(ClientError):
    """Unity answered, but with neither ``result`` nor ``error``."""


def format_ms(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


# ---------------------------------------------------------------------------
# UnityHttpBackend
# ---------------------------------------------------------------------------

# Request ids mirror what the Unity side logs for each kind of call.
TOOLS_LIST_REQUEST_ID = 1
TOOLS_CALL_REQUEST_ID = 2
SCENE_LIST_REQUEST_ID = 99

TOOLS_LIST_TIMEOUT_MS = 10_000
HEALTH_TIMEOUT_MS = 3_000
SCENE_LIST_TOOL = "unity.scene.list"


class UnityHttpBackend:
    """JSON-RPC over plain httpx POST requests; the endpoint may be swapped via ``base_url``."""

    def __init__(self, base_url: str, *, client: AsyncClient | None = None):
        self.base_url = base_url
        self._client = client if client is not None else AsyncClient(follow_redirects=True)

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"

    async def _send(self, method: str, path: str, timeout_ms: float, body: dict[str, Any] | None = None) -> Any:
        timeout = Timeout(timeout_ms / 1000)
        try:
            if method == "POST":
                response = await self._client.post(self._url(path), json=body, timeout=timeout)
            else:
                response = await self._client.get(self._url(path), timeout=timeout)
            response.raise_for_status()
        except TimeoutException as e:
            raise RequestTimeoutError(timeout_ms) from e
        except HTTPStatusError as e:
            raise ServerNotRunningError(f"HTTP {e.response.status_code}: {e.response.reason_phrase}") from e
        except RequestError as e:
            raise ServerNotRunningError(str(e) or type(e).__name__) from e
        except InvalidURL as e:
            raise ServerNotRunningError(f"Invalid Unity HTTP URL: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Malformed response from Unity ({path}): body is not JSON") from e

    async def post_jsonrpc(
        self,
        method: str,
        params: dict[str, Any],
        timeout_ms: float,
        request_id: int = TOOLS_CALL_REQUEST_ID,
    ) -> dict[str, Any]:
        """POST one JSON-RPC envelope and return the ``result`` value.

        Raises:
            UnityRpcError: the response carries an ``error`` object.
            MalformedResponseError: the response has neither ``result`` nor ``error``.
            ServerNotRunningError: Unity could not be reached (``RequestTimeoutError`` on timeout).
        """
        body = {"jsonrpc": "2.0", "method": method, "params": params, "id": request_id}
        response = await self._send("POST", "/api/mcp", timeout_ms, body)
        if not isinstance(response, dict):
            raise MalformedResponseError(f"Malformed response from Unity for {method}: expected a JSON object")

        if response.get("error"):
            raise UnityRpcError.from_payload(response["error"])
        if "result" not in response:
            raise MalformedResponseError(f"Malformed response from Unity for {method}: missing both result and error")
        result = response["result"]
        return result if isinstance(result, dict) else {}

    async def call_tool(self, name: str, arguments: dict[str, Any] | None, timeout_ms: float) -> dict[str, Any]:
        params = {"name": name, "arguments": arguments or {}}
        return await self.post_jsonrpc("tools/call", params, timeout_ms, TOOLS_CALL_REQUEST_ID)

    async def fetch_scene_list(self, max_depth: int | None, timeout_ms: float) -> dict[str, Any]:
        """Fresh hierarchy snapshot; never cached."""
        params = {"name": SCENE_LIST_TOOL, "arguments": {"maxDepth": max_depth} if max_depth else {}}
        return await self.post_jsonrpc("tools/call", params, timeout_ms, SCENE_LIST_REQUEST_ID)

    async def list_tools(self, timeout_ms: float = TOOLS_LIST_TIMEOUT_MS) -> list[dict[str, Any]]:
        result = await self.post_jsonrpc("tools/list", {}, timeout_ms, TOOLS_LIST_REQUEST_ID)
        tools = result.get("tools")
        return tools if isinstance(tools, list) else []

    async def health(self, timeout_ms: float = HEALTH_TIMEOUT_MS) -> dict[str, Any]:
        data = await self._send("GET", "/health", timeout_ms)
        if not isinstance(data, dict):
            raise MalformedResponseError("Malformed response from Unity (/health): expected a JSON object")
        return data

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()
