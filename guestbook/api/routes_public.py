"""
Public API routes - no authentication required
"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from guestbook.core.db import get_db
from guestbook.core.exceptions import NotFound
from guestbook.services.excel_service import ExcelService
from guestbook.services.qr_service import QRService
from guestbook.services.repositories import EventRepo

router = APIRouter()

@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

@router.get("/template/guest_list_template.xlsx")
async def download_template():
    """Download the guest list import template"""
    template_bytes = ExcelService.create_template()

    return Response(
        content=template_bytes,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": "attachment; filename=guest_list_template.xlsx"}
    )

@router.get("/events/{public_code}/qr.png")
async def get_checkin_qr(
    public_code: str,
    db: Session = Depends(get_db)
):
    """QR code that opens the event's check-in desk on a staff device"""
    event = EventRepo.get_by_public_code(db, public_code)
    if not event:
        raise NotFound("Event", public_code)

    qr_bytes = QRService.generate_event_qr(public_code)

    return Response(
        content=qr_bytes,
        media_type="image/png",
        headers={"Content-Disposition": f"inline; filename=checkin_{public_code}.png"}
    )
