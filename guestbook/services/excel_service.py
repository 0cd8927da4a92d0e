"""
Excel processing service for guest list import and event-day report export
"""

import io
import logging
from typing import Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy import func
from sqlalchemy.orm import Session

from guestbook.core.db import guard_storage
from guestbook.models import BenefitType, Guest, GuestSource, GuestType, Redemption, SeatingResource
from guestbook.services.guest_service import GuestService
from guestbook.services.repositories import EventRepo, GuestRepo, GuestTypeRepo
from guestbook.utils.security import Actor

logger = logging.getLogger(__name__)


class ExcelService:
    """Service for handling Excel operations"""

    REQUIRED_COLUMNS = ['name']
    OPTIONAL_COLUMNS = ['phone', 'email', 'guest type', 'max companions']

    @staticmethod
    def create_template() -> bytes:
        """Create Excel template with the importable columns"""
        df = pd.DataFrame(columns=['Name', 'Phone', 'Email', 'Guest Type', 'Max Companions'])

        sample_data = [
            ['Sample Guest 1', '+62811111111', 'guest1@example.com', 'VIP', 2],
            ['Sample Guest 2', '+62822222222', '', 'REGULAR', 1],
            ['Sample Guest 3', '', '', 'FAMILY', 0],
        ]
        for row in sample_data:
            df.loc[len(df)] = row

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name='Guest List')

        return buffer.getvalue()

    @staticmethod
    def map_columns(df: pd.DataFrame) -> Dict[str, str]:
        """Map normalised column keys to the sheet's actual headers"""
        mapping = {}
        for col in df.columns:
            col_lower = str(col).lower().strip()
            if col_lower == 'name' or col_lower == 'guest name':
                mapping['name'] = col
            elif 'phone' in col_lower:
                mapping['phone'] = col
            elif 'email' in col_lower:
                mapping['email'] = col
            elif 'type' in col_lower or 'category' in col_lower:
                mapping['guest type'] = col
            elif 'companion' in col_lower:
                mapping['max companions'] = col
        return mapping

    @staticmethod
    def validate_excel_structure(df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """Validate Excel file structure"""
        errors = []
        mapping = ExcelService.map_columns(df)
        missing_columns = [c for c in ExcelService.REQUIRED_COLUMNS if c not in mapping]
        if missing_columns:
            errors.append(f"Missing required columns: {', '.join(missing_columns)}")
        return len(errors) == 0, errors

    @staticmethod
    def _cell(row, mapping: Dict[str, str], key: str) -> Optional[str]:
        if key not in mapping:
            return None
        value = row[mapping[key]]
        if pd.isna(value):
            return None
        text = str(value).strip()
        return text or None

    @staticmethod
    def parse_rows(df: pd.DataFrame) -> Tuple[List[Dict], List[str]]:
        """Turn sheet rows into guest fields; errors name the spreadsheet row"""
        mapping = ExcelService.map_columns(df)
        rows, errors = [], []

        for index, row in df.iterrows():
            line = index + 2  # header is row 1
            name = ExcelService._cell(row, mapping, 'name')
            if not name:
                # Blank rows are skipped, a row with other data but no name is not
                if any(ExcelService._cell(row, mapping, k) for k in ExcelService.OPTIONAL_COLUMNS):
                    errors.append(f"Row {line}: name is required")
                continue

            companions_raw = ExcelService._cell(row, mapping, 'max companions')
            max_companions = 0
            if companions_raw is not None:
                try:
                    companions_value = float(companions_raw)
                except ValueError:
                    errors.append(f"Row {line}: max companions must be a number")
                    continue
                # Columns with blanks come back as floats, so 2.0 is fine and 2.5 is not
                if not companions_value.is_integer():
                    errors.append(f"Row {line}: max companions must be a whole number")
                    continue
                max_companions = int(companions_value)
                if max_companions < 0:
                    errors.append(f"Row {line}: max companions cannot be negative")
                    continue

            email = ExcelService._cell(row, mapping, 'email')
            if email and '@' not in email:
                errors.append(f"Row {line}: invalid email '{email}'")
                continue

            rows.append({
                'name': name,
                'phone': ExcelService._cell(row, mapping, 'phone'),
                'email': email,
                'guest_type': ExcelService._cell(row, mapping, 'guest type'),
                'max_companions': max_companions,
            })
        return rows, errors

    @staticmethod
    @guard_storage
    def process_excel_upload(
        file_content: bytes,
        event_id: int,
        actor: Actor,
        *,
        db: Session,
    ) -> Tuple[bool, List[str], int]:
        """Import the guest list; nothing is written if any row is invalid"""
        actor.require_owner()
        EventRepo.require(db, event_id)

        try:
            df = pd.read_excel(io.BytesIO(file_content))
        except Exception as e:
            return False, [f"Error reading Excel file: {str(e)}"], 0

        valid_structure, structure_errors = ExcelService.validate_excel_structure(df)
        if not valid_structure:
            return False, structure_errors, 0

        rows, row_errors = ExcelService.parse_rows(df)
        if row_errors:
            return False, row_errors, 0

        type_ids: Dict[str, int] = {}
        for row in rows:
            type_name = row.pop('guest_type')
            guest_type_id = None
            if type_name:
                key = type_name.upper()
                if key not in type_ids:
                    guest_type = GuestTypeRepo.get_by_name(db, event_id, key)
                    if not guest_type:
                        guest_type = GuestType(event_id=event_id, type_name=key, display_name=type_name)
                        db.add(guest_type)
                        db.flush()
                    type_ids[key] = guest_type.id
                guest_type_id = type_ids[key]
            GuestService.build_guest(db, event_id, guest_type_id=guest_type_id,
                                     source=GuestSource.REGISTERED, **row)

        db.commit()
        logger.info(f"Imported {len(rows)} guests into event {event_id}")
        return True, [], len(rows)

    @staticmethod
    @guard_storage
    def export_current_data(event_id: int, *, db: Session) -> bytes:
        """Export live guests with check-in, seat and redemption totals"""
        EventRepo.require(db, event_id)
        guests = GuestRepo.live(db, event_id).order_by(Guest.created_at, Guest.id).all()
        type_names = {t.id: t.type_name for t in GuestTypeRepo.list_for_event(db, event_id)}
        resource_names = {
            r.id: r.name for r in db.query(SeatingResource).filter(SeatingResource.event_id == event_id).all()
        }

        totals: Dict[Tuple[int, BenefitType], int] = {}
        for guest_id, benefit_type, quantity in db.query(
            Redemption.guest_id, Redemption.benefit_type, func.sum(Redemption.quantity)
        ).filter(Redemption.event_id == event_id).group_by(Redemption.guest_id, Redemption.benefit_type).all():
            totals[(guest_id, benefit_type)] = int(quantity or 0)

        data = []
        for guest in guests:
            row = {
                'Name': guest.name,
                'Phone': guest.phone,
                'Email': guest.email,
                'Guest Type': type_names.get(guest.guest_type_id),
                'Source': guest.source.value,
                'Max Companions': guest.max_companions,
                'Status': guest.checkin_status.value,
                'Companions': guest.actual_companions,
                'Checked In At': guest.checked_in_at.isoformat() if guest.checked_in_at else None,
                'Seat': resource_names.get(guest.seating_resource_id),
            }
            for benefit_type in BenefitType:
                row[benefit_type.value.title()] = totals.get((guest.id, benefit_type), 0)
            data.append(row)

        df = pd.DataFrame(data)

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name='Guest List')

        return buffer.getvalue()
