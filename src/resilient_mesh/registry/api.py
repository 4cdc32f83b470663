"""
HTTP surface of the registry.

    POST   /register/{service_name}                 -> 204 | 400
    PUT    /renew/{service_name}/{instance_id}      -> 200 record | 404
    DELETE /deregister/{service_name}/{instance_id} -> 200
    PUT    /status/{service_name}/{instance_id}     -> 200 record | 400 | 404
    GET    /instances/{service_name}                -> 200 {instances} | 404
    GET    /instances                               -> 200 {services}
    GET    /health                                  -> 200 {status, instanceCount}
    GET    /metrics                                 -> Prometheus exposition
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..config import RegistryConfigSection
from ..errors import NotFoundError, RegistrationError
from .lease_table import InstanceStatus
from .service import RegistryService

logger = logging.getLogger(__name__)


class RegisterRequest(BaseModel):
    """Registration body."""

    model_config = ConfigDict(populate_by_name=True)

    instance_id: str = Field(alias="instanceId", min_length=1)
    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    metadata: dict[str, str] = Field(default_factory=dict)
    health_check_url: str | None = Field(default=None, alias="healthCheckUrl")
    status_page_url: str | None = Field(default=None, alias="statusPageUrl")


class StatusRequest(BaseModel):
    """Status change body."""

    status: InstanceStatus


async def _json_object(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise RegistrationError("Request body must be JSON")

    if not isinstance(body, dict):
        raise RegistrationError("Request body must be a JSON object")
    return body


def create_registry_app(
    registry: RegistryService | None = None,
    config: RegistryConfigSection | None = None,
) -> FastAPI:
    """Create the registry application around an owned RegistryService."""
    if registry is None:
        config = config or RegistryConfigSection()
        registry = RegistryService(
            lease_duration=config.lease_duration,
            sweep_interval=config.sweep_interval,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await registry.start()
        try:
            yield
        finally:
            await registry.stop()

    app = FastAPI(
        title="Service Registry",
        description="Lease-based service registry",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.registry = registry

    @app.exception_handler(RegistrationError)
    async def registration_error_handler(request: Request, exc: RegistrationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.post("/register/{service_name}", status_code=204)
    async def register(service_name: str, request: Request) -> Response:
        body = await _json_object(request)
        try:
            payload = RegisterRequest.model_validate(body)
        except PydanticValidationError as e:
            raise RegistrationError(f"Invalid service instance data: {e.error_count()} error(s)")

        await registry.register(
            service_name,
            payload.instance_id,
            payload.host,
            payload.port,
            metadata=payload.metadata,
            health_check_url=payload.health_check_url,
            status_page_url=payload.status_page_url,
        )
        return Response(status_code=204)

    @app.put("/renew/{service_name}/{instance_id}")
    async def renew(service_name: str, instance_id: str):
        record = await registry.renew(service_name, instance_id)
        return record.to_dict()

    @app.put("/status/{service_name}/{instance_id}")
    async def set_status(service_name: str, instance_id: str, request: Request):
        body = await _json_object(request)
        try:
            payload = StatusRequest.model_validate(body)
        except PydanticValidationError:
            raise RegistrationError("Status must be UP or DOWN")

        record = await registry.set_status(service_name, instance_id, payload.status)
        return record.to_dict()

    @app.delete("/deregister/{service_name}/{instance_id}")
    async def deregister(service_name: str, instance_id: str):
        removed = await registry.deregister(service_name, instance_id)
        return {"message": "Service deregistered", "removed": removed}

    @app.get("/instances/{service_name}")
    async def list_instances(service_name: str):
        if not await registry.has_service(service_name):
            return JSONResponse(
                status_code=404, content={"error": f"Service {service_name} not found"}
            )

        instances = await registry.list_instances(service_name)
        return {"instances": [record.to_dict() for record in instances]}

    @app.get("/instances")
    async def list_all():
        directory = await registry.list_all()
        return {
            "services": {
                name: [record.to_dict() for record in records]
                for name, records in directory.items()
            }
        }

    @app.get("/health")
    async def health():
        return {"status": "UP", "instanceCount": await registry.instance_count()}

    @app.get("/metrics")
    async def prometheus_metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
