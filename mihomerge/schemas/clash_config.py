from datetime import date, datetime
from typing import List, Optional, Dict, Any

import yaml
from pydantic import BaseModel, Field, JsonValue, ValidationError, field_validator

from mihomerge.core.errors import DocumentError

# Proxies and proxy groups are provider-defined bags of keys.
Record = Dict[str, JsonValue]

PORT_KEYS = ("port", "socks-port", "redir-port")
MODELLED_KEYS = PORT_KEYS + ("proxies", "proxy-groups", "rules")


def record_name(record: Any) -> Optional[str]:
    if isinstance(record, dict):
        name = record.get("name")
        if isinstance(name, str):
            return name
    return None


def group_references(group: Record) -> List[str]:
    refs = group.get("proxies")
    if not isinstance(refs, list):
        return []
    return [ref for ref in refs if isinstance(ref, str)]


def _plain(value: Any) -> Any:
    # PyYAML yields dates and non-string keys that JSON-like values can't hold
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class ClashConfig(BaseModel):
    port: Optional[int] = None
    socks_port: Optional[int] = Field(None, alias="socks-port")
    redir_port: Optional[int] = Field(None, alias="redir-port")
    proxies: List[Record] = []
    proxy_groups: List[Record] = Field(default_factory=list, alias="proxy-groups")
    rules: List[str] = []
    extra: Dict[str, JsonValue] = Field(default_factory=dict)

    model_config = {
        "populate_by_name": True
    }

    @field_validator("proxies", "proxy_groups", "rules", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("rules", mode="before")
    @classmethod
    def _rules_as_strings(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(rule) for rule in value if rule is not None]
        return value

    @classmethod
    def from_mapping(cls, data: Any) -> "ClashConfig":
        """
        Split a raw top-level mapping into the modelled fields and `extra`.
        Raises:
            DocumentError: If data is not a mapping or a modelled field has the wrong shape.
        """
        if not isinstance(data, dict):
            raise DocumentError(f"configuration must be a mapping, got {type(data).__name__}")

        data = _plain(data)
        modelled = {key: data[key] for key in MODELLED_KEYS if key in data}
        extra = {key: value for key, value in data.items() if key not in MODELLED_KEYS}

        try:
            return cls.model_validate({**modelled, "extra": extra})
        except ValidationError as e:
            raise DocumentError(f"invalid configuration document: {e}") from e

    @classmethod
    def from_yaml(cls, text: str) -> "ClashConfig":
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise DocumentError(f"invalid YAML: {e}") from e
        return cls.from_mapping(data)

    def to_mapping(self) -> Dict[str, Any]:
        # extra first so passthrough keys keep their upstream position ahead of the node lists
        data: Dict[str, Any] = dict(self.extra)
        for key, value in zip(PORT_KEYS, (self.port, self.socks_port, self.redir_port)):
            if value is not None:
                data[key] = value
        data["proxies"] = self.proxies
        data["proxy-groups"] = self.proxy_groups
        data["rules"] = self.rules
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_mapping(), default_flow_style=False, sort_keys=False, allow_unicode=True)

    def proxy_names(self) -> List[str]:
        return [name for name in map(record_name, self.proxies) if name is not None]

    def proxy_group_names(self) -> List[str]:
        return [name for name in map(record_name, self.proxy_groups) if name is not None]

    def find_group(self, name: str) -> Optional[Record]:
        for group in self.proxy_groups:
            if record_name(group) == name:
                return group
        return None
