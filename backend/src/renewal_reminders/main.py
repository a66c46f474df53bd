from __future__ import annotations

import logging

from fastapi import FastAPI

from .api import router
from .config import get_settings, runtime_config_issues

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    config_issues = runtime_config_issues(settings)
    if config_issues:
        if settings.config_guard_mode == "enforce":
            raise RuntimeError(
                "configuration guard blocked startup: "
                + "; ".join(config_issues)
                + ". Remediation: set the listed variables or switch SMS_SENDER_TYPE / *_BACKEND "
                + "back to their local defaults."
            )
        if settings.config_guard_mode == "warn":
            for issue in config_issues:
                logger.warning("configuration guard warning: %s", issue)

    app = FastAPI(title=settings.app_name, version="0.1.0")
    app.include_router(router)
    return app


app = create_app()
