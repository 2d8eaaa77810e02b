from fastapi import APIRouter

from siteaudit.schemas.redirects import RedirectChainsAuditRead, RedirectChainsAuditRequest
from siteaudit.services import redirect_chains

router = APIRouter(prefix="/audits", tags=["audits"])


@router.post("/redirect-chains", response_model=RedirectChainsAuditRead, response_model_by_alias=True)
async def run_redirect_chains(payload: RedirectChainsAuditRequest) -> RedirectChainsAuditRead:
    return await redirect_chains.run_redirect_chains_pipeline(payload.base_url)
