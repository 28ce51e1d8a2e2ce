# mihomerge/api/v2/api.py

from fastapi import APIRouter
from mihomerge.api.v2.endpoints import profiles, rules, state

router = APIRouter()

router.include_router(profiles.router, prefix="/profiles")
router.include_router(rules.router, prefix="/rules")
router.include_router(state.router, prefix="/state")
