import uuid
from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import List, Optional, Iterator
from urllib.parse import urlparse

from pydantic import BaseModel, Field


class SubscriptionKind(str, Enum):
    CLASH = "clash"
    MERGE = "merge"
    SCRIPT = "script"


class Subscription(BaseModel):
    id: str = ""
    name: str = ""
    url: Optional[str] = None
    path: Optional[str] = None
    last_updated: Optional[datetime] = None
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    kind: SubscriptionKind = SubscriptionKind.CLASH
    enabled: bool = True

    def ensure_id(self) -> str:
        if not self.id:
            self.id = self.url or self.path or str(uuid.uuid4())
        return self.id

    @classmethod
    def from_source(cls, index: int, source: str) -> "Subscription":
        """
        Build an ad-hoc subscription from a URL or a local file path.
        URLs are named after their host, files after their stem.
        """
        source = source.strip()
        subscription = cls(name=f"source-{index}")

        if is_url(source):
            subscription.url = source
            host = urlparse(source).hostname
            if host:
                subscription.name = host
        else:
            subscription.path = source
            stem = PurePath(source).stem
            if stem:
                subscription.name = stem

        subscription.ensure_id()
        return subscription


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


class SubscriptionList(BaseModel):
    current: Optional[str] = None
    items: List[Subscription] = []

    def enabled(self) -> Iterator[Subscription]:
        return (item for item in self.items if item.enabled)


class RuleKind(str, Enum):
    DOMAIN = "domain"
    SUFFIX = "suffix"
    KEYWORD = "keyword"

    @property
    def directive(self) -> str:
        return {
            RuleKind.DOMAIN: "DOMAIN",
            RuleKind.SUFFIX: "DOMAIN-SUFFIX",
            RuleKind.KEYWORD: "DOMAIN-KEYWORD",
        }[self]


class CustomRule(BaseModel):
    domain: str
    kind: RuleKind = RuleKind.SUFFIX
    via: str

    def to_rule(self) -> str:
        return f"{self.kind.directive},{self.domain},{self.via}"


# Shorthands accepted for `via`, mapped to what templates actually name them
VIA_ALIASES = {
    "direct": "DIRECT",
    "reject": "REJECT",
    "proxy": "Proxy",
}


def normalize_via(via: str) -> str:
    return VIA_ALIASES.get(via.strip().lower(), via.strip())


class AppState(BaseModel):
    last_subscription_url: Optional[str] = None
    custom_rules: List[CustomRule] = Field(default_factory=list)

    def add_custom_rule(self, domain: str, via: str, kind: RuleKind = RuleKind.SUFFIX) -> bool:
        rule = CustomRule(domain=domain.strip(), kind=kind, via=normalize_via(via))
        if rule in self.custom_rules:
            return False
        self.custom_rules.append(rule)
        return True

    def remove_custom_rules(self, domain: str, via: Optional[str] = None) -> int:
        before = len(self.custom_rules)
        if via is not None:
            via = normalize_via(via)
        self.custom_rules = [
            rule for rule in self.custom_rules
            if rule.domain != domain or (via is not None and rule.via != via)
        ]
        return before - len(self.custom_rules)

    def clear_last_subscription_url(self) -> None:
        self.last_subscription_url = None
