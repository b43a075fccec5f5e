"""
mypts.api.routes.activities — Activity event ingestion
========================================================

Called by other platform services (profile, referral, sharing …) when a
rewardable activity happens.  Requires a service or admin token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from mypts.api.deps import ContextDep, get_service_caller
from mypts.services import activity_service

router = APIRouter(tags=["activities"])


class TrackActivity(BaseModel):
    profile_id: str = Field(min_length=1)
    activity_type: str = Field(min_length=1)
    metadata: dict = Field(default_factory=dict)


@router.post("/activities/track")
def track_activity(
    body: TrackActivity,
    ctx: ContextDep,
    caller: dict = Depends(get_service_caller),
):
    result = activity_service.track_activity(
        ctx, body.profile_id, body.activity_type, {**body.metadata, "reported_by": caller.get("sub")}
    )
    return result.to_dict()
