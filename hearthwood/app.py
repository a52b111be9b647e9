"""FastAPI application factory.

Run with uvicorn in factory mode:

    uvicorn hearthwood.app:create_app --factory

Handles can be injected (tests do); anything left out is built from the
settings. Without an injected LLM the backend settings are required and a
missing URL or key fails startup with ConfigurationError.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hearthwood.config import Settings, get_settings
from hearthwood.errors import NotFoundError
from hearthwood.llm import LLM, Generator, HttpLLM
from hearthwood.notify import Notifier, build_notifier
from hearthwood.retry import LLM_POLICY, RetryPolicy
from hearthwood.routes import Runtime, router
from hearthwood.storage import Storage

logger = logging.getLogger(__name__)


def build_generator(settings: Settings, llm: LLM | None = None) -> Generator:
    if llm is None:
        settings.require_llm()
        llm = HttpLLM(
            settings.llm_provider_url,
            api_key=settings.llm_api_key,
            provider_format=settings.llm_format,
            model=settings.llm_model,
            timeout=settings.llm_timeout,
        )
    policy = RetryPolicy(
        max_attempts=settings.llm_max_attempts,
        base_delay=LLM_POLICY.base_delay,
        multiplier=LLM_POLICY.multiplier,
    )
    return Generator(llm, timeout=settings.llm_timeout, policy=policy)


def create_app(
    settings: Settings | None = None,
    storage: Storage | None = None,
    llm: LLM | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    storage = storage or Storage(settings.data_dir)
    storage.init_world()

    app = FastAPI(title="Hearthwood")
    app.state.runtime = Runtime(
        settings=settings,
        storage=storage,
        generator=build_generator(settings, llm),
        notifier=notifier or build_notifier(settings.notify_bot_token, settings.notify_chat_id),
    )
    app.include_router(router, prefix="/api")

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse({"detail": str(exc)}, status_code=404)

    @app.exception_handler(ValueError)
    async def bad_request(request: Request, exc: ValueError):
        return JSONResponse({"detail": str(exc)}, status_code=400)

    logger.info("Hearthwood API ready (data: %s)", storage.base_path)
    return app
