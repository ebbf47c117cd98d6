"""
Health check utility for the Graph MCP server.

Probes the server's ``/health`` endpoint, or ``/status`` to also see whether
the configured Azure AD credentials validate, once or continuously.
"""

import asyncio
import sys
import time
from typing import Any, Optional
from dataclasses import dataclass
import httpx
import logging

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    """Result of a health check operation."""

    success: bool
    status_code: Optional[int]
    response_time_ms: float
    error: Optional[str] = None
    details: Optional[dict[str, Any]] = None

    @property
    def credential_mode(self) -> Optional[str]:
        """Validation mode reported by /status, if this was a status probe."""
        if self.details:
            return self.details.get("mode")
        return None


async def check_health_async(
    url: str,
    timeout: float = 5.0,
    auth_token: Optional[str] = None,
    require_valid_credentials: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> HealthCheckResult:
    """
    Perform one probe against the server.

    Args:
        url: /health or /status endpoint URL
        timeout: Request timeout in seconds
        auth_token: Optional bearer token for authentication
        require_valid_credentials: Treat a /status payload with
            ``isValid: false`` as a failure

    Returns:
        HealthCheckResult with success status and metrics
    """
    start_time = time.time()

    headers = {}
    if auth_token:
        headers["Authorization"] = f"Bearer {auth_token}"

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url, headers=headers)
    except httpx.TimeoutException:
        return HealthCheckResult(
            success=False,
            status_code=None,
            response_time_ms=(time.time() - start_time) * 1000,
            error=f"Request timeout after {timeout}s",
        )
    except httpx.HTTPError as e:
        return HealthCheckResult(
            success=False,
            status_code=None,
            response_time_ms=(time.time() - start_time) * 1000,
            error=f"Connection error: {e}",
        )

    response_time_ms = (time.time() - start_time) * 1000

    if response.status_code != 200:
        return HealthCheckResult(
            success=False,
            status_code=response.status_code,
            response_time_ms=response_time_ms,
            error=f"HTTP {response.status_code}: {response.text[:100]}",
        )

    try:
        details = response.json()
    except ValueError:
        details = None

    if require_valid_credentials:
        if not isinstance(details, dict) or "isValid" not in details:
            return HealthCheckResult(
                success=False,
                status_code=response.status_code,
                response_time_ms=response_time_ms,
                error="Response is not a credential status payload",
                details=details if isinstance(details, dict) else None,
            )
        if not details["isValid"]:
            return HealthCheckResult(
                success=False,
                status_code=response.status_code,
                response_time_ms=response_time_ms,
                error=f"Credentials not valid ({details.get('mode')}): {details.get('message')}",
                details=details,
            )

    return HealthCheckResult(
        success=True,
        status_code=response.status_code,
        response_time_ms=response_time_ms,
        details=details if isinstance(details, dict) else None,
    )


def check_health(
    url: str,
    timeout: float = 5.0,
    auth_token: Optional[str] = None,
    require_valid_credentials: bool = False,
) -> HealthCheckResult:
    """Synchronous wrapper around check_health_async."""
    return asyncio.run(
        check_health_async(url, timeout, auth_token, require_valid_credentials)
    )


async def continuous_health_check(
    url: str,
    interval: float = 10.0,
    timeout: float = 5.0,
    auth_token: Optional[str] = None,
    max_failures: int = 3,
    require_valid_credentials: bool = False,
) -> None:
    """
    Continuously monitor server health.

    Raises:
        RuntimeError: When max consecutive failures is reached
    """
    consecutive_failures = 0
    check_count = 0

    logger.info(f"Starting continuous health monitoring: {url}")
    logger.info(f"Check interval: {interval}s, Timeout: {timeout}s")

    while True:
        check_count += 1
        result = await check_health_async(
            url, timeout, auth_token, require_valid_credentials
        )

        if result.success:
            logger.info(
                f"✓ Health check #{check_count} passed - "
                f"Response time: {result.response_time_ms:.2f}ms"
            )
            consecutive_failures = 0
        else:
            consecutive_failures += 1
            logger.error(
                f"✗ Health check #{check_count} failed "
                f"({consecutive_failures}/{max_failures}) - Error: {result.error}"
            )

            if consecutive_failures >= max_failures:
                error_msg = (
                    f"Health check failed {consecutive_failures} times consecutively. "
                    f"Server appears to be down or unresponsive."
                )
                logger.critical(error_msg)
                raise RuntimeError(error_msg)

        await asyncio.sleep(interval)


def _print_result(result: HealthCheckResult) -> None:
    if result.success:
        print("✓ Health check passed")
    else:
        print("✗ Health check failed")
    if result.status_code:
        print(f"  Status: {result.status_code}")
    print(f"  Response time: {result.response_time_ms:.2f}ms")
    if result.error:
        print(f"  Error: {result.error}")
    if result.details:
        summary = result.details.get("summary")
        if summary:
            print(f"  Mode: {result.credential_mode}")
            for line in summary.splitlines():
                print(f"    {line}")
        else:
            print(f"  Details: {result.details}")


def main(argv: Optional[list[str]] = None) -> int:
    """
    Command-line interface for health checking.

    Usage:
        graph-mcp-health http://localhost:8000/health
        graph-mcp-health --status http://localhost:8000
        graph-mcp-health --continuous --interval 10 http://localhost:8000/health
    """
    import argparse

    parser = argparse.ArgumentParser(
        description="Graph MCP Server Health Check Utility",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "url",
        help="Endpoint URL (e.g., http://localhost:8000/health)",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Probe <url>/status and fail unless the credentials validate",
    )
    parser.add_argument(
        "--continuous",
        action="store_true",
        help="Run continuous health monitoring",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=10.0,
        help="Seconds between checks (for continuous mode, default: 10)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Request timeout in seconds (default: 5)",
    )
    parser.add_argument(
        "--auth-token",
        help="Bearer token for authentication",
    )
    parser.add_argument(
        "--max-failures",
        type=int,
        default=3,
        help="Max consecutive failures before exit (for continuous mode, default: 3)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    url = args.url
    if args.status and not url.rstrip("/").endswith("/status"):
        url = f"{url.rstrip('/')}/status"

    try:
        if args.continuous:
            asyncio.run(
                continuous_health_check(
                    url=url,
                    interval=args.interval,
                    timeout=args.timeout,
                    auth_token=args.auth_token,
                    max_failures=args.max_failures,
                    require_valid_credentials=args.status,
                )
            )
            return 0

        result = check_health(
            url=url,
            timeout=args.timeout,
            auth_token=args.auth_token,
            require_valid_credentials=args.status,
        )
        _print_result(result)
        return 0 if result.success else 1

    except KeyboardInterrupt:
        print("\nHealth check interrupted by user")
        return 130

    except RuntimeError as e:
        print(f"✗ Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
