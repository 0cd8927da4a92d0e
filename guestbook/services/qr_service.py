"""
QR code generation service
"""

import io
import qrcode

from guestbook.core.config import settings
from guestbook.models import Guest


class QRService:
    """Service for generating QR codes"""

    @staticmethod
    def generate_qr(payload: str, format: str = 'PNG') -> bytes:
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(payload)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format=format)

        return buffer.getvalue()

    @staticmethod
    def guest_qr_png(guest: Guest) -> bytes:
        """The image carries only the opaque scan code the check-in desk looks up"""
        return QRService.generate_qr(guest.scan_code)

    @staticmethod
    def get_checkin_url(public_code: str) -> str:
        """Link a staff device opens to reach the event's check-in desk"""
        return f"{settings.BASE_URL}/check-in?event={public_code}"

    @staticmethod
    def generate_event_qr(public_code: str) -> bytes:
        return QRService.generate_qr(QRService.get_checkin_url(public_code))
