# mihomerge/api/v2/endpoints/state.py

import logging
from fastapi import APIRouter, Depends, HTTPException

from mihomerge.api.deps import get_state_repo, verify_api_key
from mihomerge.repos.state_repo import StateRepo

router = APIRouter(dependencies=[Depends(verify_api_key)])

logger = logging.getLogger(__name__)

@router.get("/last-url")
async def get_last_url(repo: StateRepo = Depends(get_state_repo)):
    try:
        app_state = repo.load_state()
    except IOError as e:
        logger.error(f"Error loading app state: {e}")
        raise HTTPException(status_code=500, detail="Error loading app state")
    return {"last_subscription_url": app_state.last_subscription_url}

@router.delete("/last-url")
async def clear_last_url(repo: StateRepo = Depends(get_state_repo)):
    try:
        app_state = repo.load_state()
        app_state.clear_last_subscription_url()
        repo.save_state(app_state)
    except IOError as e:
        logger.error(f"Error clearing last subscription URL: {e}")
        raise HTTPException(status_code=500, detail="Error saving app state")
    return {"status": "cleared"}
