from typing import List, Optional, Literal

from pydantic import BaseModel, Field, field_validator

from mihomerge.core.config import settings
from mihomerge.schemas.state import CustomRule

FakeIpFilterMode = Literal["blacklist", "whitelist"]


class MergeOptions(BaseModel):
    allow_alternate_decoding: bool = Field(default_factory=lambda: settings.ALLOW_ALTERNATE_DECODING)
    user_agent: str = Field(default_factory=lambda: settings.SUBSCRIPTION_UA)
    dev_rules: bool = Field(default_factory=lambda: settings.DEV_RULES)
    dev_rules_via: str = Field(default_factory=lambda: settings.DEV_RULES_VIA)
    fake_ip_bypass: List[str] = []
    fake_ip_filter_mode: Optional[FakeIpFilterMode] = None
    external_controller_host: Optional[str] = None
    external_controller_port: Optional[int] = Field(None, ge=1, le=65535)
    external_controller_secret: Optional[str] = None
    k8s_cidr_exclude: List[str] = []
    custom_rules: List[CustomRule] = []

    @field_validator("fake_ip_filter_mode", mode="before")
    @classmethod
    def _lower_mode(cls, value):
        if isinstance(value, str):
            return value.strip().lower() or None
        return value
