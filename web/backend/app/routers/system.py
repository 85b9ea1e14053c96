"""System router -- service health and runtime configuration."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from modguard.auth.permissions import Actor, Permission, require_permission
from modguard.container import Services
from modguard.orchestrator.models import OperationContext
from web.backend.app.deps import get_services, raise_for_result
from web.backend.app.middleware.auth import get_current_actor, require
from web.backend.app.models.api import ConfigUpdateRequest, HealthResponse

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health", response_model=HealthResponse, summary="Health of every dependent service")
async def health(services: Services = Depends(get_services)):
    """Returns 503 when the pipeline is unhealthy."""
    report = await services.orchestrator.perform_health_check()
    code = 503 if report.overall.value == "unhealthy" else 200
    return JSONResponse(status_code=code, content=report.to_dict())


@router.get("/config", summary="Current settings")
async def get_config(
    actor: Actor = Depends(require(Permission.manage_system)),
    services: Services = Depends(get_services),
):
    return services.orchestrator.get_config()


@router.patch("/config", summary="Change runtime settings")
async def update_config(
    request: ConfigUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services),
):
    changes = request.model_dump(exclude_none=True)

    async def op():
        require_permission(actor.role, Permission.manage_system)
        return services.orchestrator.update_config(actor_id=actor.id, **changes)

    result = await services.orchestrator.execute_operation(
        op,
        OperationContext(
            actor_id=actor.id,
            actor_role=actor.role.value,
            action="update_config",
            target_type="system",
            metadata={"changes": changes},
        ),
    )
    raise_for_result(result, actor)
    return result.data.to_dict()
