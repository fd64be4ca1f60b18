from __future__ import annotations

import os

import uvicorn

from .config import ConfigError, load_config
from .context import build_context
from .logger import configure_logging
from .scheduler import WarmUpScheduler


def run_warm(config_path: str, logger) -> None:
    # reload config so TTL and backend changes apply without a restart
    context = build_context(load_config(config_path))
    context.service.warm()
    logger.info("Warm-up finished.")


def run_scheduled(cron_expr: str, config_path: str, logger) -> None:
    WarmUpScheduler(cron_expr, lambda: run_warm(config_path, logger), logger).start()


def run_server(host: str, port: int, logger) -> None:
    logger.info("Serving local state API on %s:%s", host, port)
    uvicorn.run("blogstate.web:app", host=host, port=port, log_config=None)


def main() -> None:
    config_path = os.getenv("CONFIG_PATH", "config/config.yaml")
    run_mode = os.getenv("RUN_MODE", "serve")

    try:
        config = load_config(config_path)
    except ConfigError as exc:
        print(f"Configuration error: {exc}")
        raise SystemExit(1)

    logger = configure_logging(config.general)
    logger.info("Configuration loaded from %s", os.path.abspath(config_path))

    try:
        if run_mode == "warm":
            run_warm(config_path, logger)
        elif run_mode == "scheduled":
            run_scheduled(config.general.cron, config_path, logger)
        else:
            run_server(os.getenv("HOST", "127.0.0.1"), int(os.getenv("PORT", "8000")), logger)
    except ConfigError as exc:
        logger.error("Configuration error at startup: %s", exc)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
