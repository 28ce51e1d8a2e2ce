# mihomerge/api/v2/endpoints/profiles.py

import logging
from fastapi import APIRouter, Depends, Query, HTTPException, Response
from typing import List, Optional

from mihomerge.api.deps import get_profile_service, merge_options, verify_api_key
from mihomerge.core.errors import BaseConfigError, NoSubscriptionError, TemplateError
from mihomerge.schemas.options import MergeOptions
from mihomerge.services.profile_service import ProfileResult, ProfileService

router = APIRouter(dependencies=[Depends(verify_api_key)])

logger = logging.getLogger(__name__)

async def _generate(service: ProfileService, sources: List[str], options: MergeOptions, use_last: bool, write: bool, subscriptions: Optional[str]) -> ProfileResult:
    try:
        return await service.generate_profile(sources=sources, options=options, use_last=use_last, write=write, subscriptions_path=subscriptions)
    except NoSubscriptionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (TemplateError, BaseConfigError) as e:
        logger.error(f"Cannot generate profile: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except IOError as e:
        logger.error(f"Storage error while generating profile: {e}")
        raise HTTPException(status_code=500, detail="Error reading or writing profile state")

@router.get("/")
async def get_profile(
    source: List[str] = Query([], description="Subscription URL or file path for this run only"),
    use_last: bool = Query(False, description="Reuse the last successful subscription URL when nothing else is configured"),
    write: bool = Query(False, description="Also write the result to the configured output path"),
    subscriptions: Optional[str] = Query(None, description="Alternative stored subscriptions file"),
    options: MergeOptions = Depends(merge_options),
    service: ProfileService = Depends(get_profile_service),
):
    result = await _generate(service, source, options, use_last, write, subscriptions)

    headers = {
        "Content-Disposition": "inline; filename=config.yaml",
        "X-Merge-Warnings": str(len(result.warnings)),
    }
    return Response(content=result.yaml, media_type="text/yaml; charset=utf-8", headers=headers)

@router.get("/summary")
async def get_profile_summary(
    source: List[str] = Query([]),
    use_last: bool = Query(False),
    subscriptions: Optional[str] = Query(None),
    options: MergeOptions = Depends(merge_options),
    service: ProfileService = Depends(get_profile_service),
):
    result = await _generate(service, source, options, use_last, False, subscriptions)
    summary = service.summarize(result)
    summary["warnings"] = result.warnings
    return summary
