from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .agent import ActionDispatcher, IntentResolver, LLMProvider
from .config import LOG_LEVEL, cors_origins
from .gcal import GoogleWorkspaceClient
from .routes import router

logger = logging.getLogger(__name__)


def create_app(resolver: Optional[IntentResolver] = None,
               dispatcher: Optional[ActionDispatcher] = None,
               clock: Optional[Callable[[], datetime]] = None) -> FastAPI:
  """
  Build the service. Collaborators are constructed here (or passed in) and
  stored on ``app.state``; routes pick them up through dependencies.
  """
  app = FastAPI(title="Voice Calendar Agent", version="0.1.0")

  if resolver is None:
    resolver = IntentResolver(LLMProvider().run_structured_completion)
  if dispatcher is None:
    dispatcher = ActionDispatcher(GoogleWorkspaceClient(), clock=clock)
  app.state.resolver = resolver
  app.state.dispatcher = dispatcher
  app.state.clock = clock

  if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

  app.include_router(router)
  logger.info("[APP] resolver model=%s", getattr(resolver, "model", "?"))
  return app


logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
app = create_app()
