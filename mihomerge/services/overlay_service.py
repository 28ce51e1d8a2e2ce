import copy
import logging
from typing import List, Optional, Set

from mihomerge.schemas.clash_config import ClashConfig, Record, group_references
from mihomerge.services.merge_service import OVERLAY_POLICY, MergeService

logger = logging.getLogger(__name__)

BUILTIN_POLICIES = {"DIRECT", "REJECT", "REJECT-DROP", "PASS", "COMPATIBLE", "GLOBAL"}


class OverlayService:
    def __init__(self, merge_service: Optional[MergeService] = None):
        self.merge_service = merge_service or MergeService()

    def apply_base_config(self, merged: ClashConfig, base: Optional[ClashConfig]) -> ClashConfig:
        """
        Lay an authoritative base config over the merged result.
        Ports and extra keys from base win, rules are replaced by base's rules, and
        base's proxy groups replace the merged ones with their node lists rebuilt
        from the merged proxies.
        """
        if base is None:
            return merged

        out = merged.model_copy(deep=True)
        node_names = self.merge_service.collect_node_names(merged)

        self.merge_service.merge_ports(out, base, OVERLAY_POLICY["ports"])
        out.proxies = self.merge_service.merge_lists(out.proxies, base.proxies, OVERLAY_POLICY["proxies"])
        out.rules = self.merge_service.merge_lists(out.rules, copy.deepcopy(base.rules), OVERLAY_POLICY["rules"])

        group_names = set(base.proxy_group_names())
        out.proxy_groups = [self._rebuild_group(group, group_names, node_names) for group in base.proxy_groups]

        out.extra = self.merge_service.merge_extra(out.extra, copy.deepcopy(base.extra), OVERLAY_POLICY["extra"])

        logger.info(f"Applied base config: {len(out.proxy_groups)} groups, {len(out.rules)} rules")
        return out

    def _rebuild_group(self, group: Record, group_names: Set[str], node_names: List[str]) -> Record:
        # Base supplies the shape; nodes come from the merge
        rebuilt = copy.deepcopy(group)
        kept = [ref for ref in group_references(group) if ref in group_names or ref in BUILTIN_POLICIES]
        rebuilt["proxies"] = kept + [name for name in node_names if name not in kept]
        return rebuilt
