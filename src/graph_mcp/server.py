import os
import sys
import signal
import atexit
import asyncio
import argparse
import logging
import time
from pathlib import Path
from typing import Any
from dotenv import load_dotenv
from importlib.metadata import version, PackageNotFoundError

# Logger will be initialized after argument parsing
logger: logging.Logger | None = None

# Paths that never require a bearer token
PUBLIC_PATHS = ("/health", "/status")


def _parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Graph MCP Server - Microsoft Graph access for AI assistants"
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(".env"),
        help="Path to .env file (default: .env)",
    )
    parser.add_argument(
        "--config-file",
        type=Path,
        default=None,
        help="Path to JSON settings file (default: $GRAPH_MCP_CONFIG_FILE or appsettings.json)",
    )
    return parser.parse_args(argv)


def _setup_signal_handlers() -> None:
    """Setup graceful shutdown handlers."""

    def signal_handler(signum, frame):
        sig_name = signal.Signals(signum).name
        assert logger is not None
        logger.warning(
            f"Received signal {sig_name} ({signum}), shutting down gracefully"
        )
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


def _log_startup_info(context) -> None:
    assert logger is not None
    try:
        pkg_version = version("graph-mcp")
    except PackageNotFoundError:
        pkg_version = "dev"

    from .auth import CredentialConfig

    logger.info("=" * 80)
    logger.info(f"Graph MCP Server Starting v{pkg_version}")
    logger.info("=" * 80)
    logger.info(f"PID: {os.getpid()}")
    logger.info(f"Python: {sys.version}")
    logger.info(f"Working Directory: {os.getcwd()}")
    logger.info("Azure AD configuration:")
    for key, value in CredentialConfig.from_lookup(context.lookup).to_dict_masked().items():
        logger.info(f"  {key}: {value}")
    logger.info("Environment Variables:")
    for key in ["MCP_TRANSPORT", "MCP_HOST", "MCP_PORT", "MCP_AUTH_METHOD"]:
        logger.info(f"  {key}: {os.getenv(key, 'not set')}")
    logger.info(
        f"Authentication method: {context.authentication.method.value}",
        extra={"auth_method": context.authentication.method.value},
    )
    logger.info("=" * 80)


def _run_startup_validation(context) -> None:
    """Validate configured credentials once and log the summary."""
    assert logger is not None
    verdict = asyncio.run(context.validate())
    log = logger.info if verdict.is_valid else logger.warning
    log(
        f"Startup credential validation: {verdict.mode.value} - {verdict.message}",
        extra={"validation_mode": verdict.mode.value},
    )
    for line in verdict.format_summary().splitlines():
        if line.strip():
            log(f"  {line}")


def create_http_app(
    mcp,
    context=None,
    auth_token: str | None = None,
    mount_mcp: bool = True,
):
    """Build the FastAPI app serving /health, /status and the MCP endpoint.

    When ``auth_token`` is set every other path requires
    ``Authorization: Bearer <auth_token>``.
    """
    from fastapi import FastAPI, Request
    from fastapi.responses import JSONResponse

    from .context import get_context

    app = FastAPI(title="graph-mcp")

    def _context():
        return context or get_context()

    if auth_token:

        @app.middleware("http")
        async def auth_middleware(request: Request, call_next):
            """Validate bearer token on all non-public requests"""
            start_time = time.time()
            client_ip = request.client.host if request.client else "unknown"
            path = request.url.path

            if path in PUBLIC_PATHS:
                return await call_next(request)

            if path in ["/favicon.ico", "/robots.txt"]:
                return JSONResponse(status_code=404, content={"detail": "Not Found"})

            auth_header = request.headers.get("Authorization")
            if not auth_header:
                if logger:
                    logger.warning(
                        f"Unauthorized request (missing auth header) from {client_ip} to {path}"
                    )
                return JSONResponse(
                    status_code=401,
                    content={"detail": "Missing Authorization header"},
                    headers={"WWW-Authenticate": "Bearer"},
                )

            if not auth_header.startswith("Bearer "):
                return JSONResponse(
                    status_code=401,
                    content={
                        "detail": "Invalid Authorization header format. Expected: Bearer <token>"
                    },
                    headers={"WWW-Authenticate": "Bearer"},
                )

            if auth_header[7:] != auth_token:
                if logger:
                    logger.warning(
                        f"Unauthorized request (invalid token) from {client_ip} to {path}"
                    )
                return JSONResponse(
                    status_code=401,
                    content={"detail": "Invalid authentication token"},
                    headers={"WWW-Authenticate": "Bearer"},
                )

            response = await call_next(request)
            duration = (time.time() - start_time) * 1000
            if logger:
                logger.info(
                    f"Request processed: {request.method} {path} from {client_ip} - "
                    f"Status: {response.status_code} - Duration: {duration:.2f}ms",
                    extra={"duration_ms": round(duration, 2)},
                )
            return response

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Liveness probe (no auth required)"""
        current = _context()
        return {
            "status": "ok",
            "transport": "http",
            "auth": "bearer" if auth_token else "none",
            "authenticationMethod": current.authentication.method.value,
        }

    @app.get("/status")
    async def status() -> dict[str, Any]:
        """Credential validation status (no auth required, no secrets)"""
        current = _context()
        verdict = await current.validate()
        return current.status_payload(verdict)

    if mount_mcp:
        # http_app() already routes at the configured path, so mount at root
        http_app = mcp.http_app()
        if hasattr(http_app, "router") and hasattr(http_app.router, "lifespan_context"):
            app.router.lifespan_context = http_app.router.lifespan_context
        app.mount("/", http_app)

    return app


def _run_http(mcp, host: str, port: int, path: str) -> None:
    assert logger is not None
    import uvicorn

    auth_method = os.getenv("MCP_AUTH_METHOD", "none").lower()
    logger.info(f"HTTP authentication method: {auth_method}")

    auth_token = None
    if auth_method == "bearer":
        auth_token = os.getenv("MCP_AUTH_TOKEN")
        if not auth_token:
            logger.error("MCP_AUTH_TOKEN required when MCP_AUTH_METHOD=bearer")
            print(
                "Error: MCP_AUTH_TOKEN required when MCP_AUTH_METHOD=bearer",
                file=sys.stderr,
            )
            sys.exit(1)
        if len(auth_token) < 32:
            logger.warning(
                f"MCP_AUTH_TOKEN is too short ({len(auth_token)} chars, minimum 32 recommended)"
            )
            print(
                "⚠️  WARNING: MCP_AUTH_TOKEN is too short (minimum 32 characters recommended)",
                file=sys.stderr,
            )
    elif auth_method == "none":
        logger.warning("Running HTTP server without authentication!")
        print(
            "⚠️  WARNING: Running HTTP server without authentication!",
            file=sys.stderr,
        )
        print(
            "⚠️  Set MCP_AUTH_METHOD=bearer and MCP_AUTH_TOKEN=<token> to enable auth",
            file=sys.stderr,
        )
        if os.getenv("MCP_ALLOW_INSECURE") != "true":
            logger.error(
                "Refusing to start insecure HTTP server without MCP_ALLOW_INSECURE=true"
            )
            print(
                "Error: Refusing to start insecure HTTP server. Set MCP_ALLOW_INSECURE=true to override",
                file=sys.stderr,
            )
            sys.exit(1)
    else:
        logger.error(f"Invalid MCP_AUTH_METHOD '{auth_method}'. Must be 'bearer' or 'none'")
        print(
            f"Error: Invalid MCP_AUTH_METHOD '{auth_method}'. Must be 'bearer' or 'none'",
            file=sys.stderr,
        )
        sys.exit(1)

    app = create_http_app(mcp, auth_token=auth_token)

    print(f"✅ Health check available at http://{host}:{port}/health", file=sys.stderr)
    print(f"✅ Credential status at http://{host}:{port}/status", file=sys.stderr)
    print(f"✅ MCP endpoint: http://{host}:{port}{path}", file=sys.stderr)

    uvicorn.run(app, host=host, port=port, log_level="info")


def main(argv: list[str] | None = None) -> None:
    args = _parse_arguments(argv)

    env_file = args.env_file
    if env_file.exists():
        load_dotenv(dotenv_path=env_file)
        print(f"Loaded environment from: {env_file}", file=sys.stderr)
    else:
        print(f"Warning: Environment file not found: {env_file}", file=sys.stderr)
        print("Continuing with system environment variables...", file=sys.stderr)

    # Import after loading the environment so configuration sees it
    from .config import build_config_lookup, set_config_lookup
    from .context import build_context, set_context
    from .exceptions import ConfigurationError
    from .logging_config import setup_logging, get_logger
    from .tools import mcp

    global logger
    logger = get_logger(__name__)

    setup_logging(
        log_dir=os.getenv("MCP_LOG_DIR", "logs"),
        log_level=os.getenv("MCP_LOG_LEVEL", "INFO"),
    )

    try:
        lookup = build_config_lookup(config_file=args.config_file)
        context = build_context(lookup)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    set_config_lookup(lookup)
    set_context(context)

    _setup_signal_handlers()

    def _cleanup():
        assert logger is not None
        logger.info("Server shutting down")

    atexit.register(_cleanup)

    _log_startup_info(context)

    if context.validation_settings.validate_on_startup:
        _run_startup_validation(context)

    transport = os.getenv("MCP_TRANSPORT", "stdio").lower()
    logger.info(f"Transport mode: {transport}")

    if transport == "http":
        host = os.getenv("MCP_HOST", "127.0.0.1")
        port = int(os.getenv("MCP_PORT", "8000"))
        path = os.getenv("MCP_PATH", "/mcp")

        if host in ["0.0.0.0", "::", ""]:
            logger.warning(
                f"Binding to all network interfaces ({host}) - ensure firewall is configured!"
            )

        logger.info(f"Starting HTTP transport on {host}:{port}{path}")
        try:
            _run_http(mcp, host, port, path)
        except Exception as e:
            logger.critical(f"Failed to start HTTP server: {e}", exc_info=True)
            raise

    elif transport == "stdio":
        logger.info("Starting stdio transport")
        try:
            mcp.run()
        except Exception as e:
            logger.critical(f"Failed to start stdio server: {e}", exc_info=True)
            raise
    else:
        logger.error(f"Invalid MCP_TRANSPORT '{transport}'. Must be 'stdio' or 'http'")
        print(
            f"Error: Invalid MCP_TRANSPORT '{transport}'. Must be 'stdio' or 'http'",
            file=sys.stderr,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
