from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import AsyncIterator, Optional
import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from ..config import RelaySettings
from ..infrastructure.conversation_store import ConversationStore, get_conversation_store
from ..observability.metrics import metrics_middleware_factory
from ..services.answer_generator import AnswerGenerator, build_answer_generator
from ..services.history import HistoryService
from ..services.session_coordinator import SessionCoordinator
from ..services.system_prompt import load_system_prompt
from .gateway import EventGateway
from .routers.history import router as history_router
from .routers.realtime import router as realtime_router

load_dotenv()  # GEMINI_API_KEY, MONGO_URL, PORT, ... from .env if present

logger = logging.getLogger("chatrelay.api")


def create_app(
    settings: Optional[RelaySettings] = None,
    store: Optional[ConversationStore] = None,
    generator: Optional[AnswerGenerator] = None,
) -> FastAPI:
    settings = settings or RelaySettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # A missing system prompt raises here and the server never starts.
        system_prompt = load_system_prompt(settings.system_prompt_path, settings.assistant_name)
        conversation_store = store if store is not None else get_conversation_store(settings)
        coordinator = SessionCoordinator(
            conversation_store,
            generator if generator is not None else build_answer_generator(settings),
            system_prompt,
            generation_timeout=settings.generation_timeout,
        )
        app.state.settings = settings
        app.state.history = HistoryService(conversation_store)
        app.state.gateway = EventGateway(coordinator)
        logger.info("relay_started", extra={"port": settings.port, "store": settings.store_impl})
        yield
        logger.info("relay_stopped")

    app = FastAPI(title="K'artz Chat Relay", version="0.1.0", lifespan=lifespan)

    app.middleware("http")(metrics_middleware_factory())

    app.include_router(history_router)
    app.include_router(history_router, prefix="/api")
    app.include_router(realtime_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health(request: Request):
        gateway: Optional[EventGateway] = getattr(request.app.state, "gateway", None)
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "components": {
                "api": "ok",
                "store": settings.store_impl,
                "connections": len(gateway.registry) if gateway else 0,
            },
        }

    @app.get("/metrics")
    def metrics() -> Response:
        data = generate_latest(REGISTRY)
        return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
