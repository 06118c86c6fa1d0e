from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from streamrelay.api.v1.routers.session import get_session_service
from streamrelay.api.v1.schemas.base import ApiOut
from streamrelay.domain.live.session.session_domain import SessionService
from streamrelay.domain.live.session.session_models import SweepMode, SweepReport
from streamrelay.shared.api.utils import verify_api_key

router = APIRouter(prefix="/admin")


class ReconcileIn(BaseModel):
    mode: SweepMode = Field(default=SweepMode.STARTUP, description="startup fails lost sessions, shutdown stops all")
    owner_id: str | None = Field(default=None, description="Only sweep this owner's sessions")
    timeout: float | None = Field(default=None, gt=0, description="Give up after this many seconds")


@router.post("/reconcile")
async def reconcile(
    body: ReconcileIn,
    _: None = Depends(verify_api_key),
    service: SessionService = Depends(get_session_service),
) -> ApiOut[SweepReport]:
    """Run a reconciliation sweep on demand."""
    report = await service.reconcile(body.mode, owner_id=body.owner_id, timeout=body.timeout)
    return ApiOut[SweepReport](results=report)
