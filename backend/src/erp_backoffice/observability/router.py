"""Operational endpoints mounted outside /api/v1."""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.orm import Session

from ..database import get_db
from .health import HealthStatus, check_database_health, check_redis_health, get_overall_health

router = APIRouter(tags=["Observability"])


@router.get("/metrics", include_in_schema=False)
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health", summary="Component health")
def health_check(db: Session = Depends(get_db)):
    """Database and Redis status. Responds 503 only when a component is down."""
    components = {"database": check_database_health(db), "redis": check_redis_health()}
    overall = get_overall_health(components)

    body = {
        "status": overall.value,
        "components": {name: component.as_dict() for name, component in components.items()},
    }
    return JSONResponse(body, status_code=503 if overall is HealthStatus.UNHEALTHY else 200)


@router.get("/ready", summary="Readiness check")
def readiness_check(db: Session = Depends(get_db)):
    database = check_database_health(db)
    if database.status is not HealthStatus.HEALTHY:
        return JSONResponse({"status": "not_ready", "message": database.message}, status_code=503)
    return {"status": "ready", "message": "Accepting traffic"}
