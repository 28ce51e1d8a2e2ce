# mihomerge/services/orchestrator.py

import asyncio
import httpx
import logging
from typing import List, Optional, Tuple

from mihomerge.core.config import settings
from mihomerge.core.errors import SubscriptionError
from mihomerge.repos.cache_repo import CacheRepo
from mihomerge.schemas.clash_config import ClashConfig
from mihomerge.schemas.options import MergeOptions
from mihomerge.schemas.state import Subscription, SubscriptionKind
from mihomerge.services.decode_service import decode
from mihomerge.services.fetch_service import FetchService
from mihomerge.services.merge_service import MergeService
from mihomerge.services.overlay_service import OverlayService
from mihomerge.services.rule_service import RuleService

logger = logging.getLogger(__name__)


async def load_subscription(fetch_service: FetchService,
                            subscription: Subscription,
                            options: MergeOptions) -> Tuple[Optional[ClashConfig], List[str]]:
    """
    Fetch and decode one subscription. Failures are soft: the subscription
    contributes nothing and the reason comes back as a warning.
    """
    subscription_id = subscription.ensure_id()
    try:
        if subscription.kind != SubscriptionKind.CLASH:
            raise SubscriptionError(f"kind '{subscription.kind.value}' is not supported for merging yet", subscription_id)

        result = await fetch_service.fetch(subscription)
        if result.from_cache:
            logger.info(f"Using cached copy of subscription '{subscription_id}'")

        return decode(result.content, options.allow_alternate_decoding, subscription_id)
    except SubscriptionError as e:
        logger.warning(f"Skipping subscription: {e}")
        return None, [str(e)]


async def load_subscriptions(fetch_service: FetchService,
                             subscriptions: List[Subscription],
                             options: MergeOptions) -> Tuple[List[ClashConfig], List[str]]:
    enabled = [subscription for subscription in subscriptions if subscription.enabled]
    # gather keeps declaration order whatever order the fetches finish in
    results = await asyncio.gather(*(load_subscription(fetch_service, s, options) for s in enabled))

    documents = []
    warnings = []
    for document, sub_warnings in results:
        warnings.extend(sub_warnings)
        if document is not None:
            documents.append(document)
    return documents, warnings


async def run_merge(template: ClashConfig,
                    base: Optional[ClashConfig],
                    subscriptions: List[Subscription],
                    options: MergeOptions,
                    fetch_service: Optional[FetchService] = None) -> Tuple[ClashConfig, List[str]]:
    """
    Run one merge: fetch and decode every enabled subscription, fold them onto
    the template, overlay the base config and inject the generated rules.
    Parameters:
        template (ClashConfig): Skeleton document.
        base (Optional[ClashConfig]): Authoritative base config, if any.
        subscriptions (List[Subscription]): Sources in declaration order; their
            revalidation metadata is updated in place.
        options (MergeOptions): Run options.
        fetch_service (Optional[FetchService]): Fetcher to use; one backed by a
            fresh httpx client is created when omitted.
    Returns:
        Tuple[ClashConfig, List[str]]: The final document and the accumulated warnings.
    """
    if fetch_service is None:
        async with httpx.AsyncClient(verify=settings.FETCH_VERIFY_TLS) as client:
            fetcher = FetchService(client, CacheRepo(), user_agent=options.user_agent)
            documents, warnings = await load_subscriptions(fetcher, subscriptions, options)
    else:
        documents, warnings = await load_subscriptions(fetch_service, subscriptions, options)

    merge_service = MergeService()
    merged = merge_service.merge(template, documents)
    merged = OverlayService(merge_service).apply_base_config(merged, base)
    final, inject_warnings = RuleService().inject_rules(merged, options)
    warnings.extend(inject_warnings)

    return final, warnings
