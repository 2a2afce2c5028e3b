"""
FastAPI Server for the IdLE Engine.

Provides REST API endpoints for validating workflows, building plans and
running them against the providers configured in the settings file.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .. import __version__
from ..audit import AuditLogger
from ..config import EngineSettings, load_settings
from ..engine.executor import PlanExecutor
from ..engine.plan_builder import PlanBuilder
from ..engine.plan_export import plan_to_document
from ..errors import PLAN_BUILD_ERRORS, SecurityViolationError
from ..models import Plan
from ..providers.factory import build_provider_registry
from ..workflows import validate_workflow

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "IDLE_ENGINE_CONFIG"


# Pydantic models for API requests/responses
class ValidateWorkflowRequest(BaseModel):
    """Workflow validation request."""
    workflow: Dict[str, Any] = Field(..., description="Workflow definition document")


class ValidateWorkflowResponse(BaseModel):
    """Workflow validation response."""
    valid: bool
    errors: List[str]


class PlanRequest(BaseModel):
    """Plan build or run request."""
    workflow: Dict[str, Any] = Field(..., description="Workflow definition document")
    request: Dict[str, Any] = Field(..., description="Lifecycle request")


# Global components (initialized on startup)
settings: Optional[EngineSettings] = None
providers: Optional[Dict[str, Any]] = None
builder: Optional[PlanBuilder] = None
executor: Optional[PlanExecutor] = None
audit_logger: Optional[AuditLogger] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global settings, providers, builder, executor, audit_logger

    logger.info("Initializing IdLE Engine API server components")

    settings = load_settings(os.environ.get(CONFIG_ENV_VAR))
    providers = build_provider_registry(settings)
    builder = PlanBuilder()
    executor = PlanExecutor(retry_policy=settings.retry)
    audit_logger = AuditLogger(settings.audit_dir) if settings.audit_dir else None

    logger.info(f"IdLE Engine API server components initialized with providers: {sorted(providers)}")

    yield

    logger.info("Shutting down IdLE Engine API server")


# Create FastAPI app
app = FastAPI(
    title="IdLE Engine API",
    description="Identity Lifecycle Engine - REST API for planning and running lifecycle workflows",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _build(payload: PlanRequest) -> Plan:
    if builder is None:
        raise HTTPException(status_code=503, detail="Engine is not initialized")
    try:
        return builder.build(payload.workflow, payload.request, providers)
    except PLAN_BUILD_ERRORS as e:
        logger.warning(f"Plan build rejected: {e}")
        raise HTTPException(status_code=400, detail=e.to_dict()) from e


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "IdLE Engine API", "version": __version__, "status": "running"}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "plan_builder": builder is not None,
            "executor": executor is not None,
            "audit_logger": audit_logger is not None,
        },
        "providers": sorted(providers or {}),
    }


@app.post("/workflows/validate", response_model=ValidateWorkflowResponse)
async def validate_workflow_document(payload: ValidateWorkflowRequest):
    """Validate a workflow definition without building a plan."""
    errors = validate_workflow(payload.workflow)
    return ValidateWorkflowResponse(valid=not errors, errors=errors)


@app.post("/plans")
def create_plan(payload: PlanRequest):
    """
    Build a plan and return its export document.

    Validation, capability, auth session and security errors are returned
    as 400 with the structured error detail.
    """
    return plan_to_document(_build(payload))


@app.post("/runs")
def run_plan(payload: PlanRequest):
    """
    Build a plan and execute it synchronously.

    The response is the execution result; a failed run is still a 200, the
    outcome is carried in ``status``.
    """
    plan = _build(payload)
    try:
        result = executor.execute(plan, providers, event_sink=audit_logger)
    except SecurityViolationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict()) from e
    return result.model_dump(mode="json")


def start_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Start the FastAPI server."""
    uvicorn.run(
        "idle_engine.api.server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == "__main__":
    start_server()
