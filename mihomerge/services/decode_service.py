# mihomerge/services/decode_service.py

import logging
from typing import List, Optional, Tuple

from mihomerge.core.errors import DocumentError, SubscriptionError
from mihomerge.schemas.clash_config import ClashConfig
from mihomerge.services.share_links import parse_share_links, try_decode_base64

logger = logging.getLogger(__name__)


def decode(content: bytes,
           allow_alternate: bool = False,
           subscription_id: Optional[str] = None) -> Tuple[ClashConfig, List[str]]:
    """
    Turn a fetched payload into a configuration document.
    Native YAML is always tried first. Base64 and share-link lists are only
    decoded when allow_alternate is set, so that a provider answering an
    unrecognised client with a node list is not silently merged as garbage.
    Parameters:
        content (bytes): Raw payload.
        allow_alternate (bool): Whether base64/share-link decoding may be attempted.
        subscription_id (Optional[str]): Used in error messages.
    Returns:
        Tuple[ClashConfig, List[str]]: The document and any per-line warnings.
    Raises:
        SubscriptionError: If the payload cannot be decoded.
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise SubscriptionError(f"payload is not UTF-8 text: {e}", subscription_id) from e

    try:
        return _native(text), []
    except DocumentError as e:
        native_error = e

    if not allow_alternate:
        raise SubscriptionError(
            f"payload is not a Clash configuration ({native_error}); "
            "alternate base64/share-link decoding is disabled",
            subscription_id,
        )

    decoded = try_decode_base64(text)
    if decoded is not None:
        try:
            return _native(decoded), []
        except DocumentError:
            pass
        proxies, warnings = parse_share_links(decoded)
        if proxies:
            return _from_links(proxies, warnings, subscription_id)

    proxies, warnings = parse_share_links(text)
    if proxies:
        return _from_links(proxies, warnings, subscription_id)

    raise SubscriptionError(
        "payload is neither a Clash configuration nor a supported share-link list",
        subscription_id,
    )


def _native(text: str) -> ClashConfig:
    document = ClashConfig.from_yaml(text)
    # A link line containing ": " in its fragment reads as a one-key YAML mapping
    if any("://" in key for key in document.extra):
        raise DocumentError("top-level keys look like share links")
    return document


def _from_links(proxies, warnings, subscription_id):
    logger.info(f"Decoded {len(proxies)} share-link proxies for '{subscription_id}'")
    return ClashConfig(proxies=proxies), warnings
