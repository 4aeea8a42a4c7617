from __future__ import annotations

from litestar import Litestar, Request, get
from litestar.config.cors import CORSConfig
from litestar.plugins.prometheus import PrometheusConfig, PrometheusController
from litestar.response import Response

from .bridge import RangeBridge

prometheus_config = PrometheusConfig(app_name="range_bridge", prefix="range_bridge")


def create_app(bridge: RangeBridge | None = None) -> Litestar:
    """Create the range bridge ASGI application."""
    bridge = bridge or RangeBridge.from_env()

    @get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @get("/download/{link_id:str}")
    async def download(request: Request, link_id: str) -> Response:
        return await bridge.download(link_id, request.headers.get("range"))

    async def startup(app: Litestar) -> None:
        await bridge.startup()

    async def shutdown(app: Litestar) -> None:
        await bridge.shutdown()

    cors_config = CORSConfig(
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "Accept-Ranges",
            "Content-Disposition",
            "Content-Length",
            "Content-Range",
        ],
    )

    return Litestar(
        route_handlers=[health, download, PrometheusController],
        on_startup=[startup],
        on_shutdown=[shutdown],
        cors_config=cors_config,
        middleware=[prometheus_config.middleware],
    )


app = create_app()
