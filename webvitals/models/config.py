"""Settings model for the vitals monitor."""

from __future__ import annotations

import os
from typing import Any, Optional

from pydantic import (
    BaseModel,
    Field,
    FieldSerializationInfo,
    PrivateAttr,
    field_serializer,
    field_validator,
    model_validator,
)

ENV_PREFIX = "env:"
SECRET_FIELDS = ("google_psi_api_key", "slack_webhook_url", "smtp_password")


class MonitorSettings(BaseModel):
    # PageSpeed Insights
    google_psi_api_key: str = ""
    strategy: str = "mobile"
    request_delay_seconds: float = 2.0
    request_timeout_seconds: float = 60.0

    # History
    history_retention: int = 30

    # Alerts
    alerts_enabled: bool = True
    slack_webhook_url: str = ""
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    email_from: str = "alerts@webvitals.local"
    email_recipients: list[str] = Field(default_factory=list)
    dashboard_url: Optional[str] = None

    # Auto refresh
    auto_refresh_enabled: bool = True
    auto_refresh_interval_hours: float = 24

    _env_refs: dict[str, str] = PrivateAttr(default_factory=dict)

    @field_validator(*SECRET_FIELDS, mode="before")
    @classmethod
    def resolve_env_secret(cls, v: str) -> str:
        if isinstance(v, str) and v.startswith(ENV_PREFIX):
            env_var = v[len(ENV_PREFIX):]
            resolved = os.environ.get(env_var)
            if resolved is None:
                raise ValueError(f"Environment variable '{env_var}' not set")
            return resolved
        return v

    @model_validator(mode="wrap")
    @classmethod
    def remember_env_refs(cls, data: Any, handler: Any) -> MonitorSettings:
        settings = handler(data)
        if isinstance(data, dict):
            settings._env_refs = {
                k: v for k, v in data.items()
                if k in SECRET_FIELDS and isinstance(v, str) and v.startswith(ENV_PREFIX)
            }
        return settings

    @field_serializer(*SECRET_FIELDS)
    def keep_env_refs(self, value: str, info: FieldSerializationInfo) -> str:
        # Dumps carry the env: reference, never the resolved secret
        return self._env_refs.get(info.field_name, value)

    @field_validator("strategy")
    @classmethod
    def check_strategy(cls, v: str) -> str:
        if v not in ("mobile", "desktop"):
            raise ValueError("strategy must be 'mobile' or 'desktop'")
        return v

    @field_validator("history_retention")
    @classmethod
    def check_retention(cls, v: int) -> int:
        if v < 2:
            raise ValueError("history_retention must keep at least 2 snapshots")
        return v

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_host and self.email_recipients)
