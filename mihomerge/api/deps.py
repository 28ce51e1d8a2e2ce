# mihomerge/api/deps.py

import logging
from typing import List, Optional
from fastapi import HTTPException, Query
from pydantic import ValidationError

from mihomerge.core.config import settings
from mihomerge.repos.state_repo import StateRepo, state_repo
from mihomerge.schemas.options import MergeOptions
from mihomerge.services.profile_service import ProfileService

logger = logging.getLogger(__name__)

def verify_api_key(api_key: Optional[str] = Query(None)) -> None:
    if not settings.USE_API_KEY:
        return
    if api_key != settings.API_KEY:
        logger.warning(f"Unauthorized access attempt with API key: {api_key}")
        raise HTTPException(status_code=401, detail="Unauthorized access")

def get_state_repo() -> StateRepo:
    return state_repo

def get_profile_service() -> ProfileService:
    return ProfileService()

def merge_options(
    allow_alternate: Optional[bool] = Query(None, description="Decode base64/share-link subscriptions"),
    user_agent: Optional[str] = Query(None, description="User-Agent sent to subscription providers"),
    dev_rules: Optional[bool] = Query(None, description="Prepend developer-domain rules"),
    dev_rules_via: Optional[str] = Query(None, description="Group or proxy the developer rules route through"),
    fake_ip_bypass: List[str] = Query([], description="Patterns exempted from fake-ip (e.g. +.example.com)"),
    fake_ip_filter_mode: Optional[str] = Query(None, description="blacklist or whitelist"),
    external_controller_host: Optional[str] = Query(None),
    external_controller_port: Optional[int] = Query(None),
    external_controller_secret: Optional[str] = Query(None),
    k8s_cidr_exclude: List[str] = Query([], description="Extra CIDRs for tun route-exclude-address"),
) -> MergeOptions:
    values = {
        "allow_alternate_decoding": allow_alternate,
        "user_agent": user_agent,
        "dev_rules": dev_rules,
        "dev_rules_via": dev_rules_via,
        "fake_ip_bypass": fake_ip_bypass,
        "fake_ip_filter_mode": fake_ip_filter_mode,
        "external_controller_host": external_controller_host,
        "external_controller_port": external_controller_port,
        "external_controller_secret": external_controller_secret,
        "k8s_cidr_exclude": k8s_cidr_exclude,
    }
    try:
        return MergeOptions(**{key: value for key, value in values.items() if value is not None})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid merge options: {e.errors(include_url=False)}")
