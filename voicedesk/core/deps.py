"""FastAPI dependencies for database access and composed services."""

import hmac
from typing import Generator

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from voicedesk.core.config import settings
from voicedesk.core.container import Services
from voicedesk.db.session import SessionLocal
from voicedesk.schemas.tenant import TenantConfig
from voicedesk.services.tenant_config_service import TenantNotFoundError


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return services


def get_tenant(tenant_id: str, services: Services = Depends(get_services)) -> TenantConfig:
    """Resolve the path's tenant_id, 404 when unknown."""
    try:
        return services.tenants.get_config(tenant_id)
    except TenantNotFoundError:
        raise HTTPException(status_code=404, detail="Unknown tenant")


def require_operator(x_api_key: str = Header(default="")) -> None:
    """Operator endpoints require X-API-Key outside dev."""
    expected = settings.OPERATOR_API_KEY
    if not expected:
        if settings.ENV == "dev":
            return
        raise HTTPException(status_code=501, detail="OPERATOR_API_KEY not configured")
    if not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=403, detail="Invalid API key")
