from __future__ import annotations

import uvicorn

from fundnotify.core.config import get_settings


def main() -> None:
    # Serve the API with env-driven bind settings; the arq worker runs the sweeps separately.
    settings = get_settings()
    uvicorn.run(
        "fundnotify.apps.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
