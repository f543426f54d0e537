"""
Lead Management API Routes for the lead qualification engine.
"""

import logging
from typing import List, Dict, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from .conversations import LeadOut, MeetingRequestOut, lead_to_out
from database.repositories import LeadRepository, MeetingRequestRepository
from database.session import get_db
from lead_scoring.qualification import LeadStatus

logger = logging.getLogger(__name__)

router = APIRouter()


class LeadEventOut(BaseModel):
    event_type: str
    details: Dict[str, Any] = {}
    created_at: str


class LeadDetail(LeadOut):
    """Lead with its event history and meeting requests."""
    events: List[LeadEventOut] = []
    meetings: List[MeetingRequestOut] = []


@router.get("/leads", response_model=List[LeadOut])
async def list_leads(
    status: Optional[LeadStatus] = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """
    List leads, highest score first.

    Query params:
        status: only leads with this status (prospect, nurturing, qualified)
        limit: max leads to return
    """
    leads = await LeadRepository(db).list_leads(status=status.value if status else None, limit=limit)
    return [lead_to_out(lead) for lead in leads]


@router.get("/leads/{lead_id}", response_model=LeadDetail)
async def get_lead(lead_id: str, db: AsyncSession = Depends(get_db)):
    repo = LeadRepository(db)
    lead = await repo.get_by_id(lead_id)
    if lead is None:
        raise HTTPException(status_code=404, detail="Lead not found")

    events = await repo.get_events(lead_id)
    meetings = await MeetingRequestRepository(db).list_for_lead(lead_id)

    return LeadDetail(
        **lead_to_out(lead).model_dump(),
        events=[
            LeadEventOut(
                event_type=e.event_type,
                details=e.details_json or {},
                created_at=e.created_at.isoformat(),
            )
            for e in events
        ],
        meetings=[
            MeetingRequestOut(
                lead_id=m.lead_id,
                attempt=m.attempt,
                status=m.status,
                subject=m.subject,
                start_time=m.start_time.isoformat() if m.start_time else None,
                end_time=m.end_time.isoformat() if m.end_time else None,
                event_id=m.event_id,
                meeting_link=m.meeting_link,
                error=m.error,
            )
            for m in meetings
        ],
    )
