"""
Claims desk REST API.

FastAPI application entry point. Build it with create_app(); `claim-desk serve`
runs it under uvicorn.
"""
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from claim_desk.api.errors import register_error_handlers
from claim_desk.api.routes import router as claims_router
from claim_desk.config.settings import get_api_config
from claim_desk.db.database import init_db
from claim_desk.db.repository import ClaimRepository
from claim_desk.db.sessions import StaffSessionStore
from claim_desk.notifications import Notifier
from claim_desk.observability import get_logger
from claim_desk.workflow.orchestrator import ClaimWorkflow

logger = get_logger(__name__)


def create_app(
    db_path: str | Path | None = None,
    notifier: Notifier | None = None,
    workflow: ClaimWorkflow | None = None,
) -> FastAPI:
    """Build the API around one workflow and one session store sharing a database."""
    if workflow is None:
        repository = ClaimRepository(str(db_path) if db_path is not None else None)
        workflow = ClaimWorkflow(repository, notifier=notifier)
    db = workflow.repository.db_path

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(db)
        logger.info("Claims desk API started (db=%s)", db)
        yield
        logger.info("Claims desk API stopped")

    app = FastAPI(
        title="Claims Desk",
        description="""
    Staff-facing claims workflow.

    ## Workflow

    1. Submit a claim with `POST /api/claims`; it starts as pending
    2. Review, reject or approve with `PATCH /api/claims/{id}`
    3. Approving sends a one-time code; confirm it with `POST /api/claims/{id}/verify-otp`
    4. Initiate payment, then mark paid with the payment code
    """,
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_api_config()["cors_origins"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(claims_router, prefix="/api")

    app.state.workflow = workflow
    app.state.sessions = StaffSessionStore(db)

    @app.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app

