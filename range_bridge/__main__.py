from __future__ import annotations

import uvicorn

from .config import load_server_settings_from_env


def main() -> None:
    """Serve ``range_bridge.app:app`` with uvicorn."""
    settings = load_server_settings_from_env()
    uvicorn.run("range_bridge.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
