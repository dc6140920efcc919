"""Unity endpoint URL classification and the remote-host policy.

The bridge forwards state-mutating calls, so by default it expects Unity on
this machine. ``apply_url_policy`` turns an ``analyze_unity_http_url`` verdict
into a warning, silence, or (strict mode) a refusal with a loopback fallback.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from unity_mcp_bridge.config import BridgeConfig

_DEFAULT_PORTS = {"http": 80, "https": 443}


class UnityUrlError(ValueError):
    """Raised when the configured Unity HTTP URL is empty or cannot be parsed."""


@dataclass(frozen=True)
class UrlAnalysis:
    url: str
    scheme: str
    hostname: str
    port: str
    origin: str
    is_http: bool
    is_loopback: bool


@dataclass(frozen=True)
class UrlPolicyDecision:
    """Which URL to use after applying the remote-host policy."""

    url: str
    warning: str | None = None
    error: str | None = None
    blocked_url: str | None = None
    fallback_source: str | None = None


def _is_localhost_name(hostname: str) -> bool:
    return (
        hostname in ("localhost", "localhost.")
        or hostname.endswith(".localhost")
        or hostname.endswith(".localhost.")
    )


def _is_loopback_ipv4(hostname: str) -> bool:
    parts = hostname.split(".")
    if len(parts) != 4:
        return False
    octets: list[int] = []
    for part in parts:
        if not part or not part.isdigit():
            return False
        value = int(part)
        if value > 255:
            return False
        octets.append(value)
    return octets[0] == 127


def _is_loopback_ipv6(hostname: str) -> bool:
    return hostname in ("::1", "[::1]")


def is_loopback_hostname(hostname: str) -> bool:
    hostname = hostname.lower()
    return _is_localhost_name(hostname) or _is_loopback_ipv4(hostname) or _is_loopback_ipv6(hostname)


def analyze_unity_http_url(unity_http_url: Any) -> UrlAnalysis:
    """Parse and classify a Unity endpoint.

    Raises:
        UnityUrlError: if the URL is empty or unparsable.
    """
    raw = unity_http_url.strip() if isinstance(unity_http_url, str) else ""
    if not raw:
        raise UnityUrlError("Unity HTTP URL is empty")

    try:
        parsed = urlsplit(raw)
        port_number = parsed.port
    except ValueError as e:
        raise UnityUrlError(f"Invalid URL: {e}") from e

    scheme = parsed.scheme.lower()
    if not scheme:
        raise UnityUrlError(f"Invalid URL: {raw}")

    hostname = parsed.hostname or ""
    is_http = scheme in ("http", "https")
    if is_http and not hostname:
        raise UnityUrlError(f"Invalid URL: {raw}")

    port = "" if port_number is None or port_number == _DEFAULT_PORTS.get(scheme) else str(port_number)
    host_part = f"[{hostname}]" if ":" in hostname else hostname
    origin = f"{scheme}://{host_part}{':' + port if port else ''}"

    return UrlAnalysis(
        url=raw,
        scheme=scheme,
        hostname=hostname,
        port=port,
        origin=origin,
        is_http=is_http,
        is_loopback=is_loopback_hostname(hostname),
    )


def apply_url_policy(unity_http_url: str, config: BridgeConfig, default_url: str) -> UrlPolicyDecision:
    """Decide whether ``unity_http_url`` may be used as-is.

    Non-loopback hosts produce a warning unless ``allow_remote_unity_http_url`` is
    set; with ``strict_local_unity_http_url`` they are refused and replaced by
    ``http://localhost:<same port>`` (or ``default_url`` when there is no port).
    """
    try:
        analysis = analyze_unity_http_url(unity_http_url)
    except UnityUrlError as e:
        return UrlPolicyDecision(url=unity_http_url, error=str(e))

    warning: str | None = None
    if not analysis.is_http:
        warning = f"Unity HTTP URL protocol is not http/https: {analysis.scheme}:\nCurrent URL: {unity_http_url}"

    if analysis.is_loopback:
        return UrlPolicyDecision(url=unity_http_url, warning=warning)

    remote_base = f"Unity HTTP URL points to a non-local host: {analysis.hostname}\nCurrent URL: {unity_http_url}"

    if config.strict_local_unity_http_url:
        error = (
            "Refusing non-local Unity HTTP URL because MCP_STRICT_LOCAL_UNITY_HTTP_URL=true.\n"
            f"{remote_base}\n"
            "To intentionally use a remote Unity HTTP URL, set MCP_STRICT_LOCAL_UNITY_HTTP_URL=false "
            "and MCP_ALLOW_REMOTE_UNITY_HTTP_URL=true."
        )
        port = int(analysis.port) if analysis.port.isdigit() else 0
        if 0 < port <= 65535:
            return UrlPolicyDecision(
                url=f"http://localhost:{port}",
                warning=warning,
                error=error,
                blocked_url=unity_http_url,
                fallback_source="localhost(blocked-remote)",
            )
        return UrlPolicyDecision(
            url=default_url,
            warning=warning,
            error=error,
            blocked_url=unity_http_url,
            fallback_source="default(blocked-remote)",
        )

    if not config.allow_remote_unity_http_url:
        warning = (
            f"{remote_base}\n"
            "If this is intentional, set MCP_ALLOW_REMOTE_UNITY_HTTP_URL=true "
            "(or set MCP_STRICT_LOCAL_UNITY_HTTP_URL=true to refuse remote URLs)."
        )

    return UrlPolicyDecision(url=unity_http_url, warning=warning)
