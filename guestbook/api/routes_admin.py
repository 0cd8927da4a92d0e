"""
Admin API routes - event owner only
"""

from fastapi import APIRouter, Depends, UploadFile, File
from fastapi.responses import Response
from sqlalchemy.orm import Session

from guestbook.api.ws import websocket_manager
from guestbook.core.config import settings
from guestbook.core.db import get_db
from guestbook.core.exceptions import InvalidRequest
from guestbook.models import Event, Guest
from guestbook.schemas.event import EventCreate, EventResponse
from guestbook.schemas.guest import GuestCreate, GuestResponse, GuestTypeCreate, GuestTypeResponse, GuestUpdate
from guestbook.schemas.redemption import EntitlementResponse, EntitlementUpsert
from guestbook.schemas.staff import StaffCreate, StaffResponse, StaffUpdate
from guestbook.services.checkin_service import CheckInService
from guestbook.services.excel_service import ExcelService
from guestbook.services.guest_service import GuestService
from guestbook.services.qr_service import QRService
from guestbook.services.quota_service import QuotaService
from guestbook.services.repositories import EventRepo, GuestRepo, GuestTypeRepo
from guestbook.services.seating_service import SeatingService
from guestbook.services.staff_service import StaffService
from guestbook.utils.responses import success_response, error_response
from guestbook.utils.security import Actor, verify_admin_token

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# -------- Events --------

@router.post("/events")
async def create_event(
    event_data: EventCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    event = EventRepo.create(db, event_data.name, event_data.date, event_data.organizer_email)
    return success_response(
        message="Event created successfully",
        data=EventResponse.model_validate(event).model_dump(mode="json"),
        status_code=201
    )

@router.get("/events")
async def list_events(
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    events = db.query(Event).order_by(Event.date.desc()).all()
    return success_response(
        message=f"{len(events)} events",
        data=[EventResponse.model_validate(e).model_dump(mode="json") for e in events]
    )

@router.get("/events/{event_id}")
async def get_event_details(
    event_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Event with its check-in and seating figures"""
    event = EventRepo.require(db, event_id)
    data = EventResponse.model_validate(event).model_dump(mode="json")
    data["checkin"] = CheckInService.checkin_stats(event_id, db=db)
    data["seating"] = SeatingService.seating_stats(event_id, db=db)
    return success_response(message="Event details retrieved", data=data)

# -------- Guest types and entitlements --------

@router.post("/events/{event_id}/guest-types")
async def create_guest_type(
    event_id: int,
    body: GuestTypeCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    EventRepo.require(db, event_id)
    type_name = body.type_name.strip().upper()
    if GuestTypeRepo.get_by_name(db, event_id, type_name):
        raise InvalidRequest(f"Guest type {type_name} already exists", field="type_name")
    guest_type = GuestTypeRepo.create(db, event_id, type_name, body.display_name, body.priority_order)
    return success_response(
        message=f"Guest type {guest_type.type_name} created",
        data=GuestTypeResponse.model_validate(guest_type).model_dump(mode="json"),
        status_code=201
    )

@router.get("/events/{event_id}/guest-types")
async def list_guest_types(
    event_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    guest_types = GuestTypeRepo.list_for_event(db, event_id)
    return success_response(
        message=f"{len(guest_types)} guest types",
        data=[GuestTypeResponse.model_validate(t).model_dump(mode="json") for t in guest_types]
    )

@router.put("/events/{event_id}/entitlements")
async def set_entitlement(
    event_id: int,
    body: EntitlementUpsert,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    GuestTypeRepo.require(db, body.guest_type_id, event_id=event_id)
    entitlement = QuotaService.set_entitlement(
        body.guest_type_id, body.benefit_type, body.max_quantity, actor, db=db, is_active=body.is_active
    )
    return success_response(
        message="Entitlement saved",
        data=EntitlementResponse.model_validate(entitlement).model_dump(mode="json")
    )

@router.get("/events/{event_id}/entitlements")
async def list_entitlements(
    event_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    entitlements = QuotaService.list_entitlements(event_id, db=db)
    return success_response(
        message=f"{len(entitlements)} entitlements",
        data=[EntitlementResponse.model_validate(e).model_dump(mode="json") for e in entitlements]
    )

# -------- Guests --------

@router.post("/events/{event_id}/guests")
async def register_guest(
    event_id: int,
    body: GuestCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    guest = GuestService.register_guest(event_id, actor, db=db, **body.model_dump())
    return success_response(
        message=f"Guest {guest.name} registered",
        data=GuestResponse.model_validate(guest).model_dump(mode="json"),
        status_code=201
    )

@router.get("/events/{event_id}/guests")
async def list_guests(
    event_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    EventRepo.require(db, event_id)
    guests = GuestRepo.live(db, event_id).order_by(Guest.created_at, Guest.id).all()
    return success_response(
        message=f"{len(guests)} guests",
        data=[GuestResponse.model_validate(g).model_dump(mode="json") for g in guests]
    )

@router.patch("/guests/{guest_id}")
async def update_guest(
    guest_id: int,
    body: GuestUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    guest = GuestService.update_guest(guest_id, actor, db=db, **body.model_dump(exclude_unset=True))
    return success_response(
        message=f"Guest {guest.name} updated",
        data=GuestResponse.model_validate(guest).model_dump(mode="json")
    )

@router.delete("/guests/{guest_id}")
async def delete_guest(
    guest_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Soft delete; check-in and redemption history stay intact"""
    guest = GuestService.soft_delete_guest(guest_id, actor, db=db)
    return success_response(message=f"Guest {guest.name} deleted", data={"id": guest.id})

@router.get("/guests/{guest_id}/qr.png")
async def guest_qr(
    guest_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """QR image carrying the guest's scan code"""
    guest = GuestRepo.require(db, guest_id)
    return Response(
        content=QRService.guest_qr_png(guest),
        media_type="image/png",
        headers={"Content-Disposition": f"inline; filename=guest_{guest.id}.png"}
    )

@router.post("/events/{event_id}/guests/import")
async def import_guests(
    event_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Import a guest list from Excel"""
    event = EventRepo.require(db, event_id)

    if not file.filename.endswith(('.xlsx', '.xls')):
        return error_response(
            message="Invalid file format. Please upload an Excel file (.xlsx or .xls)",
            error_code="INVALID_REQUEST",
            status_code=400
        )

    file_content = await file.read()
    if len(file_content) > settings.MAX_UPLOAD_SIZE:
        return error_response(
            message="File too large",
            error_code="INVALID_REQUEST",
            details={"max_bytes": settings.MAX_UPLOAD_SIZE},
            status_code=413
        )

    success, errors, processed_count = ExcelService.process_excel_upload(
        file_content, event_id, actor, db=db
    )
    if not success:
        return error_response(
            message="Excel file validation failed",
            error_code="INVALID_REQUEST",
            details=errors,
            status_code=422
        )

    await websocket_manager.publish(event.public_code, "guests_imported", count=processed_count)

    return success_response(
        message=f"Excel file processed successfully. {processed_count} guests imported.",
        data={"processed_count": processed_count, "filename": file.filename}
    )

@router.get("/events/{event_id}/export.xlsx")
async def export_guests(
    event_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """Event-day report of every guest"""
    event = EventRepo.require(db, event_id)
    excel_content = ExcelService.export_current_data(event_id, db=db)

    return Response(
        content=excel_content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename=guests_{event.public_code}.xlsx"}
    )

# -------- Staff --------

@router.post("/events/{event_id}/staff")
async def create_staff(
    event_id: int,
    body: StaffCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    """The access token is shown once, in this response"""
    staff, token = StaffService.create_staff(event_id, actor, db=db, **body.model_dump())
    data = StaffResponse.model_validate(staff).model_dump(mode="json")
    data["access_token"] = token
    return success_response(message=f"Staff {staff.full_name} created", data=data, status_code=201)

@router.get("/events/{event_id}/staff")
async def list_staff(
    event_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    staff = StaffService.list_staff(event_id, db=db)
    return success_response(
        message=f"{len(staff)} staff members",
        data=[StaffResponse.model_validate(s).model_dump(mode="json") for s in staff]
    )

@router.patch("/staff/{staff_id}")
async def update_staff(
    staff_id: int,
    body: StaffUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    staff = StaffService.update_staff(staff_id, actor, db=db, **body.model_dump(exclude_unset=True))
    return success_response(
        message=f"Staff {staff.full_name} updated",
        data=StaffResponse.model_validate(staff).model_dump(mode="json")
    )

@router.delete("/staff/{staff_id}")
async def deactivate_staff(
    staff_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(verify_admin_token)
):
    staff = StaffService.deactivate_staff(staff_id, actor, db=db)
    return success_response(
        message=f"Staff {staff.full_name} deactivated",
        data=StaffResponse.model_validate(staff).model_dump(mode="json")
    )
