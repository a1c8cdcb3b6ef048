#!/usr/bin/env python3
"""
Startup wrapper for the AI Copilot API.

Binds dual-stack ([::], IPv4 + IPv6) when the host supports it, otherwise
falls back to IPv4-only 0.0.0.0.

Environment variables:
- BIND_ADDRESS: Explicit bind address (default: auto-detect)
- PORT: HTTP port (default: 3001)
- LOG_LEVEL: uvicorn log level (default: info)
"""

import asyncio
import os
import socket
import sys

import uvicorn

APP_PATH = "copilot_api.main:app"


def can_bind_ipv6_dualstack(port: int) -> bool:
    """Return True if [::]:port can be bound with IPV6_V6ONLY disabled."""
    sock = None
    try:
        sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        sock.bind(("::", port))
        return True
    except (AttributeError, OSError):
        return False
    finally:
        if sock is not None:
            sock.close()


def resolve_host(port: int, bind_address: str) -> str:
    if bind_address != "auto":
        print(f"Using explicit bind address: {bind_address}:{port}", file=sys.stderr)
        return bind_address
    if can_bind_ipv6_dualstack(port):
        print(f"Auto-detected dual-stack support, binding to [::]:{port}", file=sys.stderr)
        return "::"
    print(f"IPv6 not available, binding to 0.0.0.0:{port}", file=sys.stderr)
    return "0.0.0.0"


async def serve_dualstack(port: int, log_level: str) -> None:
    # uvicorn does not clear IPV6_V6ONLY itself, so hand it a prepared socket
    sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
    sock.bind(("::", port))
    sock.listen(128)
    sock.setblocking(False)

    server = uvicorn.Server(uvicorn.Config(APP_PATH, log_level=log_level))
    await server.serve(sockets=[sock])


def main() -> None:
    """Start uvicorn with an auto-detected or explicit bind address."""
    port = int(os.getenv("PORT", "3001"))
    log_level = os.getenv("LOG_LEVEL", "info").lower()
    host = resolve_host(port, os.getenv("BIND_ADDRESS", "auto"))

    if host == "::":
        asyncio.run(serve_dualstack(port, log_level))
    else:
        uvicorn.run(APP_PATH, host=host, port=port, log_level=log_level)


if __name__ == "__main__":
    main()
