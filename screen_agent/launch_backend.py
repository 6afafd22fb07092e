"""Entrypoint for launching the screen agent control API with a port check.

If the configured port already serves the agent, the launcher exits quietly;
if anything else holds it, the launcher aborts with a clear message.
"""

from __future__ import annotations

import argparse
import socket
import sys
import urllib.request

import uvicorn

from screen_agent.config import DEV_HOST, DEV_PORT, is_test_mode, resolve_host_port

APP_PATH = "screen_agent.app:app"


def log(message: str) -> None:
    print(f"[agent-launch] {message}", flush=True)


def _can_bind(host: str, port: int) -> bool:
    """Return True if the socket can be bound, False otherwise."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
            return True
        except OSError:
            return False


def _agent_already_running(host: str, port: int) -> bool:
    try:
        with urllib.request.urlopen(f"http://{host}:{port}/", timeout=1) as resp:
            return resp.status == 200
    except OSError:
        return False


def check_port(host: str, port: int) -> str:
    """
    Returns:
    - "free": safe to launch
    - "running": the agent already answers on the port
    - "blocked": port in use by something else
    """
    if _can_bind(host, port):
        return "free"
    if _agent_already_running(host, port):
        log(f"Agent already running on http://{host}:{port}; not starting a new one.")
        return "running"
    log(f"Port {port} on {host} is in use by another process. Please free it manually.")
    return "blocked"


def main(host: str | None = None, port: int | None = None, reload: bool = False) -> None:
    resolved_host, resolved_port = resolve_host_port(host=host, port=port)
    profile = "test" if is_test_mode() else "dev"

    availability = check_port(resolved_host, resolved_port)
    if availability == "running":
        sys.exit(0)
    if availability == "blocked":
        sys.exit(1)

    log(f"Starting uvicorn {APP_PATH} on http://{resolved_host}:{resolved_port} [{profile}]")
    uvicorn.run(
        APP_PATH,
        host=resolved_host,
        port=resolved_port,
        reload=reload,
        log_level="info",
    )


def cli(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Launch the screen agent control API with port checks.")
    parser.add_argument("--host", help=f"Host to bind (default dev: {DEV_HOST})")
    parser.add_argument(
        "--port",
        type=int,
        help=f"Port to bind (default dev: {DEV_PORT}, test: see SCREEN_AGENT_TEST_PORT)",
    )
    parser.add_argument("--reload", action="store_true", help="Enable uvicorn reload (dev only)")
    args = parser.parse_args(argv)

    main(host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    cli()
