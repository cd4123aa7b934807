"""Chat backend reachability probe."""

import asyncio
import time

from companion.config import ServiceConfig
from companion.core.errors import CompanionError, ErrorKind
from companion.core.logging import get_logger
from companion.core.results import HealthResult
from companion.core.transport import HttpTransport

_log = get_logger("core.health")

NOT_CONFIGURED = "Server URL not configured"


async def health_check(config: ServiceConfig, transport: HttpTransport) -> HealthResult:
    """Probe ``GET {server_url}/health`` within ``config.health_timeout``.

    Never raises and never hangs past the timeout. Safe to retry.
    """
    if not config.server_url:
        return HealthResult.failure(NOT_CONFIGURED, ErrorKind.NOT_CONFIGURED)

    timeout = config.health_timeout
    url = f"{config.server_url}/health"
    t0 = time.monotonic()
    try:
        response = await asyncio.wait_for(
            transport.request("GET", url, provider="backend", timeout=timeout),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        _log.warning("health timeout", timeout=timeout)
        return HealthResult.failure(
            f"Health check timed out after {timeout:g}s", ErrorKind.TIMEOUT
        )
    except CompanionError as e:
        _log.warning("health unreachable", error=e.message[:100])
        return HealthResult.from_error(e)

    latency_ms = int((time.monotonic() - t0) * 1000)
    if not response.is_success:
        _log.warning("health server error", status=response.status_code, dur_ms=latency_ms)
        return HealthResult.failure("Server error", ErrorKind.PROVIDER_ERROR)

    try:
        data = response.json()
    except ValueError:
        return HealthResult.failure(
            "Invalid health response", ErrorKind.PROVIDER_ERROR
        )
    if not isinstance(data, dict):
        data = {}

    status = data.get("status")
    identity = data.get("clawdbot")
    _log.info("health done", status=status, dur_ms=latency_ms)
    if status == "ok":
        return HealthResult(server_identity=identity)
    result = HealthResult.failure(
        f"Server status: {status}", ErrorKind.PROVIDER_ERROR
    )
    result.server_identity = identity
    return result
