"""FastAPI dependency injection providers."""

from typing import Annotated

from fastapi import Depends, Request

from stitchflow.orchestration.orchestrator import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    """Return the orchestrator created during app startup."""
    return request.app.state.orchestrator


# Type aliases for dependency injection
OrchestratorDep = Annotated[Orchestrator, Depends(get_orchestrator)]
