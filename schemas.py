"""
Database Schemas for the Hostel Outing Pass System

Each Pydantic model maps onto a MongoDB document. The collection name is the
lowercase of the class name.

Collections:
- outingpass
- systemstate (a single document holding the configuration)
"""
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    STUDENT = "STUDENT"
    WARDEN = "WARDEN"
    GUARD = "GUARD"


class PassStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    OUT = "OUT"
    RETURNED = "RETURNED"
    WAITLISTED = "WAITLISTED"
    CANCELLED = "CANCELLED"
    # Declared for future time-based expiry; nothing assigns it yet.
    EXPIRED = "EXPIRED"


# Statuses that occupy a slot against the capacity for their date
ADMITTED_STATUSES = frozenset({PassStatus.APPROVED, PassStatus.OUT})
# Statuses whose slot is handed on when the pass is cancelled or rejected
SLOT_RELEASING_STATUSES = frozenset({PassStatus.APPROVED, PassStatus.PENDING})
RELEASE_STATUSES = frozenset({PassStatus.CANCELLED, PassStatus.REJECTED})


class Admission(str, Enum):
    ADMITTED = "ADMITTED"
    WAITLISTED = "WAITLISTED"


# -------------------- Applications --------------------
class OutingApplication(BaseModel):
    """What a student submits; identity fields are copied onto the pass."""
    student_id: str
    student_name: str
    reg_no: str
    room_no: str
    reason: str
    out_date: date
    requested_out_time: str = "after 5 PM"


# -------------------- Passes --------------------
class OutingPass(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique pass id, also embedded in the QR token")
    student_id: str
    student_name: str
    reg_no: str
    room_no: str
    reason: str
    out_date: date
    requested_out_time: str
    status: PassStatus
    created_at: datetime = Field(..., description="Used for first-come-first-served ordering")
    qr_data: Optional[str] = None
    out_scanned: bool = False
    out_scanned_at: Optional[datetime] = None
    in_scanned: bool = False
    in_scanned_at: Optional[datetime] = None


# -------------------- System --------------------
class SystemState(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_window_open: bool = True
    capacity: int = Field(60, ge=0)
    current_count: int = Field(0, description="APPROVED or OUT passes dated today; always derived")
    opening_time: str = Field("17:00", description="Display only")
