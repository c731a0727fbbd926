"""FastAPI app factory.

Endpoints are intentionally thin wrappers over the workflow service.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mailflow import __version__
from mailflow.automation.workflow.actions import MailActions
from mailflow.automation.workflow.execution_log import ExecutionLog
from mailflow.automation.workflow.mock_actions import InMemoryMailActions
from mailflow.automation.workflow.service import WorkflowService
from mailflow.automation.workflow.store import PlanStore
from mailflow.server.config import ServerSettings
from mailflow.server.workflow_router import router as workflow_router

logger = logging.getLogger(__name__)


def create_app(
    *,
    actions: MailActions | None = None,
    settings: ServerSettings | None = None,
) -> FastAPI:
    """Build the API app.

    Without a real mail backend the in-memory capability is used, which makes the server
    usable for authoring and dry runs.
    """

    settings = settings or ServerSettings()
    service = WorkflowService(
        actions or InMemoryMailActions(),
        PlanStore(settings.workflows_dir),
        log=ExecutionLog(max_entries=settings.max_log_entries),
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        await service.initialize()
        try:
            yield
        finally:
            service.shutdown()

    app = FastAPI(
        title="mailflow",
        version=__version__,
        description="REST API over the mailflow workflow service.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    # Expose settings and the service for request handlers.
    app.state.settings = settings
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(workflow_router, prefix="/api")

    logger.debug("App created", extra={"state_path": str(settings.state_path)})
    return app
