"""FastAPI control surface over the tunnel manager and SQL gateway."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from ..common.exceptions import GatewayError
from ..common.logging import get_logger
from ..config import GatewaySettings
from ..sql.gateway import SQLGateway
from ..tunnel.manager import TunnelManager
from .schemas import (
    ConnectRequest,
    ConnectResponse,
    ErrorResponse,
    ExecuteSqlRequest,
    MessageResponse,
)

logger = get_logger(__name__)

BANNER = "Teleport Backend Server is running and ready to receive requests."


def get_manager(request: Request) -> TunnelManager:
    return request.app.state.manager


def get_gateway(request: Request) -> SQLGateway:
    return request.app.state.gateway


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Convert a GatewayError into ``{success, error, message}``."""
    logger.warning(
        "Request failed",
        path=request.url.path,
        category=exc.category,
        error=exc.message,
    )
    body = ErrorResponse(error=exc.category, message=exc.message)
    return JSONResponse(status_code=exc.http_status, content=body.model_dump())


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unexpected server error", path=request.url.path, exc_info=exc)
    body = ErrorResponse(error="InternalError", message=str(exc) or "Unexpected server error")
    return JSONResponse(status_code=500, content=body.model_dump())


def create_app(
    settings: GatewaySettings | None = None,
    manager: TunnelManager | None = None,
    gateway: SQLGateway | None = None,
) -> FastAPI:
    """Build the control API.

    Args:
        settings: Gateway settings (read from the environment if None)
        manager: Tunnel manager (built from settings if None)
        gateway: SQL gateway (built from settings if None)
    """
    settings = settings or GatewaySettings()
    manager = manager or TunnelManager(settings)
    gateway = gateway or SQLGateway(probe_timeout=settings.probe_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.manager.shutdown()

    app = FastAPI(title="tsh-gateway", lifespan=lifespan)
    app.state.settings = settings
    app.state.manager = manager
    app.state.gateway = gateway
    app.state.control_port = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(GatewayError, gateway_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unexpected_error_handler)

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return BANNER

    @app.get("/events")
    async def events(manager: TunnelManager = Depends(get_manager)) -> StreamingResponse:
        """Server-sent status events: current status, then every transition."""
        return StreamingResponse(
            manager.broadcaster.stream(manager.current_status),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )

    @app.get("/status")
    async def status(manager: TunnelManager = Depends(get_manager)) -> dict[str, Any]:
        return {"success": True, **manager.current_status().to_payload()}

    @app.get("/server-info")
    async def server_info(request: Request) -> dict[str, Any]:
        return {"success": True, "port": request.app.state.control_port}

    @app.post("/sso-login", response_model=MessageResponse)
    async def sso_login(manager: TunnelManager = Depends(get_manager)) -> Any:
        try:
            manager.teleport.launch_sso_login()
        except OSError as e:
            logger.error("Failed to launch terminal for SSO login", error=str(e))
            return JSONResponse(
                status_code=500,
                content={"success": False, "message": str(e) or "Failed to launch terminal"},
            )
        return MessageResponse(message="Opened a new terminal window for SSO login.")

    @app.post("/connect")
    async def connect(
        body: ConnectRequest | None = None, manager: TunnelManager = Depends(get_manager)
    ) -> dict[str, Any]:
        environment = body.environment if body is not None else None
        result = await manager.connect(environment or "")
        response = ConnectResponse(
            tunnel_port=result.tunnel_port,
            message=result.message,
            data=result.status_output,
        )
        return response.model_dump(by_alias=True)

    @app.post("/disconnect", response_model=MessageResponse)
    async def disconnect(manager: TunnelManager = Depends(get_manager)) -> MessageResponse:
        return MessageResponse(message=await manager.disconnect())

    @app.post("/execute-sql")
    async def execute_sql(
        body: ExecuteSqlRequest | None = None, gateway: SQLGateway = Depends(get_gateway)
    ) -> JSONResponse:
        body = body or ExecuteSqlRequest()
        rows = await gateway.execute(body.query, body.db_config)
        return JSONResponse(content={"success": True, "data": jsonable_encoder(rows)})

    return app
