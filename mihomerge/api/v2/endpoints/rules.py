# mihomerge/api/v2/endpoints/rules.py

import logging
from fastapi import APIRouter, Depends, Query, HTTPException
from typing import Optional
from pydantic import BaseModel

from mihomerge.api.deps import get_state_repo, verify_api_key
from mihomerge.repos.state_repo import StateRepo
from mihomerge.schemas.state import RuleKind
from mihomerge.services.rule_service import RuleService

router = APIRouter(dependencies=[Depends(verify_api_key)])

logger = logging.getLogger(__name__)

class CustomRuleIn(BaseModel):
    domain: str
    via: str
    kind: RuleKind = RuleKind.SUFFIX

def _load(repo: StateRepo):
    try:
        return repo.load_state()
    except IOError as e:
        logger.error(f"Error loading app state: {e}")
        raise HTTPException(status_code=500, detail="Error loading app state")

def _save(repo: StateRepo, app_state) -> None:
    try:
        repo.save_state(app_state)
    except IOError as e:
        logger.error(f"Error saving app state: {e}")
        raise HTTPException(status_code=500, detail="Error saving app state")

@router.get("/custom")
async def list_custom_rules(repo: StateRepo = Depends(get_state_repo)):
    app_state = _load(repo)
    return [rule.to_rule() for rule in app_state.custom_rules]

@router.post("/custom")
async def add_custom_rule(rule: CustomRuleIn, repo: StateRepo = Depends(get_state_repo)):
    if not rule.domain.strip() or not rule.via.strip():
        raise HTTPException(status_code=422, detail="domain and via must not be empty")

    app_state = _load(repo)
    added = app_state.add_custom_rule(rule.domain, rule.via, rule.kind)
    if added:
        _save(repo, app_state)
        logger.info(f"Added custom rule {app_state.custom_rules[-1].to_rule()}")

    return {
        "status": "added" if added else "exists",
        "rules": [r.to_rule() for r in app_state.custom_rules],
    }

@router.delete("/custom")
async def remove_custom_rules(domain: str = Query(...), via: Optional[str] = Query(None), repo: StateRepo = Depends(get_state_repo)):
    app_state = _load(repo)
    removed = app_state.remove_custom_rules(domain, via)
    _save(repo, app_state)
    return {"removed": removed}

@router.get("/check")
async def check(domain: str = Query(...),
                repo: StateRepo = Depends(get_state_repo),
                service: RuleService = Depends(RuleService)):
    app_state = _load(repo)
    return {"domain": domain, "route": service.check_domain(domain, app_state.custom_rules)}

@router.get("/dev")
async def list_dev_domains(service: RuleService = Depends(RuleService)):
    return service.dev_domains()
