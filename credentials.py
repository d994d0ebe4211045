import secrets
import string
from datetime import datetime, timedelta, timezone
from io import BytesIO
from typing import Iterable, Optional

import jwt
import qrcode
from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from config import JWT_ALGO, QR_SECRET, QR_VALIDITY_HOURS
from schemas import OutingPass

PASS_ID_ALPHABET = string.ascii_uppercase + string.digits
PASS_ID_LENGTH = 9


class InvalidCredential(Exception):
    pass


def generate_pass_id(existing_ids: Iterable[str]) -> str:
    """Random 9-character id, redrawn until it differs from every id ever issued."""
    taken = set(existing_ids)
    while True:
        candidate = "".join(secrets.choice(PASS_ID_ALPHABET) for _ in range(PASS_ID_LENGTH))
        if candidate not in taken:
            return candidate


def issue_qr_token(student_id: str, pass_id: str, issued_at: datetime,
                   secret: str = QR_SECRET) -> str:
    expiry = issued_at + timedelta(hours=QR_VALIDITY_HOURS)
    payload = {"studentId": student_id, "passId": pass_id, "exp": expiry}
    return jwt.encode(payload, secret, algorithm=JWT_ALGO)


def read_qr_token(token: str, secret: str = QR_SECRET, now: Optional[datetime] = None) -> str:
    """Verify signature and expiry and return the pass id carried by the token."""
    options = {}
    if now is not None:
        # PyJWT checks `exp` against the wall clock; callers with their own clock check it here
        options["verify_exp"] = False
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGO], options=options)
    except jwt.PyJWTError as e:
        raise InvalidCredential(f"Invalid pass credential: {e}") from e
    if now is not None and now >= datetime.fromtimestamp(payload["exp"], tz=timezone.utc):
        raise InvalidCredential("Invalid pass credential: Signature has expired")
    pass_id = payload.get("passId")
    if not pass_id:
        raise InvalidCredential("Invalid pass credential: missing pass id")
    return pass_id


def render_qr_png(data: str) -> bytes:
    qr_img = qrcode.make(data)
    qr_bytes = BytesIO()
    qr_img.save(qr_bytes, format="PNG")
    return qr_bytes.getvalue()


def render_pass_pdf(outing_pass: OutingPass) -> bytes:
    qr_bytes = BytesIO(render_qr_png(outing_pass.qr_data or outing_pass.id))

    pdf_bytes = BytesIO()
    c = canvas.Canvas(pdf_bytes, pagesize=letter)
    c.setFont("Helvetica-Bold", 18)
    c.drawString(72, 720, "Hostel Outing Pass")
    c.setFont("Helvetica", 12)
    c.drawString(72, 690, f"Pass: {outing_pass.id}")
    c.drawString(72, 670, f"Student: {outing_pass.student_name} ({outing_pass.reg_no})")
    c.drawString(72, 650, f"Room: {outing_pass.room_no}")
    c.drawString(72, 630, f"Date: {outing_pass.out_date.isoformat()}  Time: {outing_pass.requested_out_time}")
    c.drawString(72, 610, f"Status: {outing_pass.status.value}")
    c.drawImage(ImageReader(qr_bytes), 72, 430, width=160, height=160)
    c.showPage()
    c.save()
    return pdf_bytes.getvalue()
