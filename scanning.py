"""
Gate scan workflow.

    APPROVED --exit scan--> OUT --entry scan--> RETURNED

Any other starting status is refused and the pass is left untouched, so a
replayed scan fails the second time.
"""
import logging
from datetime import datetime
from typing import List, Optional

from allocation import StatusChange, find_pass, replace_pass, utcnow
from errors import InvalidTransition
from notifications import PassScannedIn, PassScannedOut
from schemas import OutingPass, PassStatus

logger = logging.getLogger("gatepass.scanning")


def normalize_pass_id(raw: str) -> str:
    return raw.strip().upper()


def scan_exit(pass_id: str, passes: List[OutingPass], now: Optional[datetime] = None) -> StatusChange:
    current = find_pass(passes, pass_id)
    if current.status != PassStatus.APPROVED:
        logger.warning("Exit scan refused for %s: status %s", pass_id, current.status.value)
        raise InvalidTransition(f"Cannot mark exit. Pass status is {current.status.value}")

    updated = current.model_copy(update={
        "status": PassStatus.OUT,
        "out_scanned": True,
        "out_scanned_at": now or utcnow(),
    })
    logger.info("Exit scan recorded for %s", pass_id)
    return StatusChange(updated, replace_pass(passes, updated), [PassScannedOut(pass_id=pass_id)])


def scan_entry(pass_id: str, passes: List[OutingPass], now: Optional[datetime] = None) -> StatusChange:
    current = find_pass(passes, pass_id)
    if current.status != PassStatus.OUT:
        logger.warning("Entry scan refused for %s: status %s", pass_id, current.status.value)
        raise InvalidTransition(
            f"Student must be marked 'OUT' before marking entry. Pass status is {current.status.value}"
        )

    updated = current.model_copy(update={
        "status": PassStatus.RETURNED,
        "in_scanned": True,
        "in_scanned_at": now or utcnow(),
    })
    logger.info("Entry scan recorded for %s", pass_id)
    return StatusChange(updated, replace_pass(passes, updated), [PassScannedIn(pass_id=pass_id)])
