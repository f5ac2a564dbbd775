"""FastAPI application entry-point."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from proxyverify import __version__
from proxyverify.errors import TransportError
from proxyverify.routers import health, nodes, trusted_ca
from proxyverify.services.ssh_manager import ssh_manager
from proxyverify.utils.logging import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hooks."""
    setup_logging()
    yield
    # Shutdown: close node SSH sessions
    await ssh_manager.close()


app = FastAPI(
    title="Proxy Verify API",
    description="Cluster-wide proxy validation for Windows nodes",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(TransportError)
async def transport_error_handler(request: Request, exc: TransportError) -> JSONResponse:
    """Backend failures outside a route body (e.g. in dependencies) map to 502."""
    return JSONResponse(status_code=502, content={"detail": str(exc)})


app.include_router(health.router)
app.include_router(nodes.router)
app.include_router(trusted_ca.router)
