from __future__ import annotations

import uvicorn

from .config import load_config


def run() -> None:
    config = load_config()
    uvicorn.run(
        "bq_agent.api:build_default_app",
        host=config.api_host,
        port=config.api_port,
        reload=False,
        factory=True,
    )


if __name__ == "__main__":
    run()
