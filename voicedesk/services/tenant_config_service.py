"""Tenant configuration lookup.

Each tenant is a JSON file `{tenant_id}.json` in TENANT_CONFIG_DIR. Parsed
configs are held in a TTLCache owned by the service instance.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from voicedesk.core.cache import TTLCache
from voicedesk.core.config import settings
from voicedesk.schemas.tenant import BusinessHoursSchedule, TenantConfig

logger = logging.getLogger(__name__)

TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,99}$")


class TenantNotFoundError(Exception):
    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Unknown tenant: {tenant_id}")


class TenantConfigService:
    def __init__(
        self,
        config_dir: str | Path,
        cache: TTLCache[TenantConfig],
        *,
        default_timezone: str = "America/New_York",
    ):
        self.config_dir = Path(config_dir)
        self.cache = cache
        self.default_timezone = default_timezone
        self._registered: dict[str, TenantConfig] = {}

    def register(self, config: TenantConfig) -> None:
        """Add a tenant without a config file (embedding, tests)."""
        self._registered[config.tenant_id] = config
        self.cache.invalidate(config.tenant_id)

    def get_config(self, tenant_id: str) -> TenantConfig:
        """
        Load a tenant's configuration.

        Raises:
            TenantNotFoundError: no registered tenant and no config file
        """
        if tenant_id in self._registered:
            return self._registered[tenant_id]

        cached = self.cache.get(tenant_id)
        if cached is not None:
            return cached

        config = self._load(tenant_id)
        self.cache.set(tenant_id, config)
        return config

    def _load(self, tenant_id: str) -> TenantConfig:
        if not TENANT_ID_PATTERN.match(tenant_id):
            raise TenantNotFoundError(tenant_id)
        path = self.config_dir / f"{tenant_id}.json"
        if not path.is_file():
            raise TenantNotFoundError(tenant_id)

        data = json.loads(path.read_text(encoding="utf-8"))
        data.setdefault("tenant_id", tenant_id)
        data.setdefault("name", tenant_id)
        data.setdefault("timezone", self.default_timezone)
        config = TenantConfig.model_validate(data)
        logger.info("Loaded tenant config for %s", tenant_id)
        return config

    def exists(self, tenant_id: str) -> bool:
        try:
            self.get_config(tenant_id)
        except TenantNotFoundError:
            return False
        return True

    def get_business_hours(self, tenant_id: str) -> BusinessHoursSchedule:
        return self.get_config(tenant_id).business_hours

    def get_timezone(self, tenant_id: str) -> str:
        return self.get_config(tenant_id).timezone

    def invalidate(self, tenant_id: str) -> None:
        self.cache.invalidate(tenant_id)

    def clear_cache(self) -> None:
        self.cache.clear()


def build_tenant_config_service() -> TenantConfigService:
    return TenantConfigService(
        settings.TENANT_CONFIG_DIR,
        TTLCache(settings.TENANT_CONFIG_TTL_SECONDS),
        default_timezone=settings.DEFAULT_TIMEZONE,
    )
