from enum import Enum
from typing import Dict, Iterable, List
import logging

from mihomerge.schemas.clash_config import ClashConfig, Record, record_name, group_references

logger = logging.getLogger(__name__)

DEFAULT_SELECTOR_NAME = "🚀 节点选择"

class FieldPolicy(str, Enum):
    APPEND = "append"
    REPLACE = "replace"
    TEMPLATE_WINS = "template_wins"
    BASE_WINS = "base_wins"

# Subscriptions folded onto the template
MERGE_POLICY: Dict[str, FieldPolicy] = {
    "ports": FieldPolicy.TEMPLATE_WINS,
    "proxies": FieldPolicy.APPEND,
    "rules": FieldPolicy.APPEND,
    "proxy-groups": FieldPolicy.APPEND,
    "extra": FieldPolicy.TEMPLATE_WINS,
}

# Base config laid over the merged result
OVERLAY_POLICY: Dict[str, FieldPolicy] = {
    "ports": FieldPolicy.BASE_WINS,
    "proxies": FieldPolicy.TEMPLATE_WINS,
    "rules": FieldPolicy.REPLACE,
    "proxy-groups": FieldPolicy.REPLACE,
    "extra": FieldPolicy.BASE_WINS,
}

PORT_FIELDS = ("port", "socks_port", "redir_port")


def unique_names(names: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(names))


class MergeService:
    def merge(self, template: ClashConfig, subs: List[ClashConfig]) -> ClashConfig:
        """
        Fold subscription documents onto the template, in list order.
        Parameters:
            template (ClashConfig): Supplies authoritative scalars and the initial group shape.
            subs (List[ClashConfig]): Decoded subscriptions in declaration order.
        Returns:
            ClashConfig: A new document; inputs are left untouched.
        """
        out = template.model_copy(deep=True)

        for sub in subs:
            sub = sub.model_copy(deep=True)
            self.merge_ports(out, sub, MERGE_POLICY["ports"])
            # Duplicate proxy names across subscriptions are kept as given
            out.proxies = self.merge_lists(out.proxies, sub.proxies, MERGE_POLICY["proxies"])
            out.rules = self.merge_lists(out.rules, sub.rules, MERGE_POLICY["rules"])
            out.proxy_groups = self.merge_proxy_groups(out.proxy_groups, sub.proxy_groups)
            out.extra = self.merge_extra(out.extra, sub.extra, MERGE_POLICY["extra"])

        node_names = self.collect_node_names(out)
        self._populate_default_selector(out, node_names)

        logger.info(f"Merged {len(subs)} subscription(s): {len(out.proxies)} proxies, "
                    f"{len(out.proxy_groups)} groups, {len(out.rules)} rules")
        return out

    def merge_lists(self, current: List, incoming: List, policy: FieldPolicy) -> List:
        if policy == FieldPolicy.APPEND:
            return current + incoming
        if policy in (FieldPolicy.REPLACE, FieldPolicy.BASE_WINS):
            return list(incoming)
        return current

    def merge_ports(self, target: ClashConfig, incoming: ClashConfig, policy: FieldPolicy) -> None:
        if policy != FieldPolicy.BASE_WINS:
            return
        for field in PORT_FIELDS:
            value = getattr(incoming, field)
            if value is not None:
                setattr(target, field, value)

    def merge_extra(self, current: Dict, incoming: Dict, policy: FieldPolicy) -> Dict:
        merged = dict(current)
        for key, value in incoming.items():
            if policy == FieldPolicy.BASE_WINS or key not in merged:
                merged[key] = value
        return merged

    def merge_proxy_groups(self, current: List[Record], incoming: List[Record]) -> List[Record]:
        """
        Fold incoming groups into current by name.
        A known group gains the incoming references it does not already list;
        an unknown (or unnamed) group is appended as-is.
        """
        groups = list(current)
        by_name = {}
        for group in groups:
            name = record_name(group)
            if name is not None and name not in by_name:
                by_name[name] = group

        for group in incoming:
            name = record_name(group)
            existing = by_name.get(name) if name is not None else None
            if existing is None:
                groups.append(group)
                if name is not None:
                    by_name[name] = group
                continue

            refs = group_references(existing)
            for ref in group_references(group):
                if ref not in refs:
                    refs.append(ref)
            existing["proxies"] = refs

        return groups

    def collect_node_names(self, config: ClashConfig) -> List[str]:
        """Every proxy name in order of first appearance."""
        return unique_names(config.proxy_names())

    def _populate_default_selector(self, config: ClashConfig, node_names: List[str]) -> None:
        group = config.find_group(DEFAULT_SELECTOR_NAME)
        if group is not None:
            group["proxies"] = list(node_names)
