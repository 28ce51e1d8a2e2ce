# mihomerge/services/profile_service.py

import os
import logging
from typing import List, Dict, Any, Optional
from pydantic import BaseModel

from mihomerge.core.errors import NoSubscriptionError
from mihomerge.repos.document_repo import DocumentRepo, document_repo
from mihomerge.repos.output_repo import OutputRepo, output_repo
from mihomerge.repos.state_repo import StateRepo, state_repo
from mihomerge.schemas.clash_config import ClashConfig
from mihomerge.schemas.options import MergeOptions
from mihomerge.schemas.state import Subscription
from mihomerge.services.fetch_service import FetchService
from mihomerge.services.orchestrator import run_merge
from mihomerge.services.rule_service import DEV_RULE_TARGETS, RuleService

logger = logging.getLogger(__name__)

class ProfileResult(BaseModel):
    document: ClashConfig
    yaml: str
    options: MergeOptions
    warnings: List[str] = []
    output_path: Optional[str] = None

class ProfileService:
    def __init__(self,
                 state: Optional[StateRepo] = None,
                 documents: Optional[DocumentRepo] = None,
                 output: Optional[OutputRepo] = None,
                 fetch_service: Optional[FetchService] = None,
                 rule_service: Optional[RuleService] = None):
        self.state_repo = state or state_repo
        self.document_repo = documents or document_repo
        self.output_repo = output or output_repo
        self.fetch_service = fetch_service
        self.rule_service = rule_service or RuleService()

    def _resolve_sources(self, stored: List[Subscription], sources: List[str], use_last: bool, last_url: Optional[str]) -> List[Subscription]:
        adhoc = [Subscription.from_source(index, source) for index, source in enumerate(sources) if source.strip()]
        if stored or adhoc:
            return adhoc

        if not use_last:
            raise NoSubscriptionError("no subscription provided; pass a source or use the last subscription URL")
        if not last_url:
            raise NoSubscriptionError("no cached last subscription URL; merge once with an explicit source first")

        logger.info(f"Using cached last subscription URL {last_url}")
        return [Subscription.from_source(0, last_url)]

    async def generate_profile(self,
                               sources: Optional[List[str]] = None,
                               options: Optional[MergeOptions] = None,
                               use_last: bool = False,
                               write: bool = False,
                               output_path: Optional[str] = None,
                               template_path: Optional[str] = None,
                               base_config_path: Optional[str] = None,
                               subscriptions_path: Optional[str] = None) -> ProfileResult:
        """
        Merge the stored subscriptions plus any ad-hoc sources onto the template.
        Parameters:
            sources (Optional[List[str]]): Extra URLs or file paths for this run only.
            options (Optional[MergeOptions]): Merge options; stored quick rules are added.
            use_last (bool): Fall back to the last successful URL when nothing else is configured.
            write (bool): Write the result through the output repo.
            output_path (Optional[str]): Overrides the configured output path.
            subscriptions_path (Optional[str]): An alternative stored subscriptions file.
        Returns:
            ProfileResult: The merged document, its YAML and the run warnings.
        Raises:
            TemplateError: If the template is missing or invalid.
            BaseConfigError: If a base config exists but is invalid.
            NoSubscriptionError: If there is nothing to merge.
        """
        options = options or MergeOptions()
        template = self.document_repo.load_template(template_path)
        base = self.document_repo.load_base_config(base_config_path)

        subscription_list = self.state_repo.load_subscriptions(subscriptions_path)
        app_state = self.state_repo.load_state()

        adhoc = self._resolve_sources(subscription_list.items, sources or [], use_last, app_state.last_subscription_url)
        subscriptions = subscription_list.items + adhoc

        options = options.model_copy(update={"custom_rules": app_state.custom_rules + options.custom_rules})

        previous = [s.last_updated for s in subscriptions]
        document, warnings = await run_merge(template, base, subscriptions, options, self.fetch_service)
        yaml_text = document.to_yaml()

        written = None
        if write:
            written = self.output_repo.write(yaml_text, output_path)

        self.state_repo.save_subscriptions(subscription_list, subscriptions_path)

        resolved_urls = [
            s.url for s, before in zip(subscriptions, previous)
            if s.url and s.last_updated is not before
        ]
        if resolved_urls and app_state.last_subscription_url != resolved_urls[-1]:
            app_state.last_subscription_url = resolved_urls[-1]
            self.state_repo.save_state(app_state)

        logger.info(f"Generated profile with {len(document.proxies)} proxies and {len(warnings)} warning(s)")

        return ProfileResult(document=document, yaml=yaml_text, options=options, warnings=warnings, output_path=written)

    def summarize(self, result: ProfileResult, output_path: Optional[str] = None) -> Dict[str, Any]:
        """Dry-run style overview of a merged document."""
        document, options = result.document, result.options
        dns = document.extra.get("dns")
        dns = dns if isinstance(dns, dict) else {}
        filters = dns.get("fake-ip-filter")

        dev_via = None
        if options.dev_rules:
            # Rules are already injected, so re-resolving sees the same groups and proxies
            dev_via, _ = self.rule_service.resolve_destination(options.dev_rules_via, document)

        return {
            "proxies": len(document.proxy_names()),
            "groups": len(document.proxy_group_names()),
            "rules": len(document.rules),
            "custom_rules": len(options.custom_rules),
            "fake_ip": {
                "mode": dns.get("fake-ip-filter-mode"),
                "requested": len(options.fake_ip_bypass),
                "total": len(filters) if isinstance(filters, list) else None,
            },
            "dev_rules": {
                "enabled": options.dev_rules,
                "via": dev_via,
                "count": len(DEV_RULE_TARGETS) if options.dev_rules else 0,
            },
            "external_controller": {
                "address": document.extra.get("external-controller"),
                "secret": "set" if isinstance(document.extra.get("secret"), str) else "unset",
            },
            "output_path": result.output_path or os.path.abspath(output_path or self.output_repo.output_path),
        }
