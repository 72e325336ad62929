"""Day-code encoding for attendance.

A code is ``P`` (present) or ``A`` (absent) followed by an optional number of
overtime hours logged that day: ``"P"``, ``"P8"``, ``"A3"``. An absent day may
still carry overtime.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from ..core.constants import MAX_OVERTIME_HOURS_PER_DAY
from ..core.enums import AttendanceStatus
from ..core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_CODE_RE = re.compile(r"^([PA])(\d*)$")


@dataclass(frozen=True)
class DecodedAttendance:
    status: AttendanceStatus
    overtime_hours: int
    raw: Any

    @property
    def is_present(self) -> bool:
        return self.status == AttendanceStatus.PRESENT

    @property
    def is_valid(self) -> bool:
        return self.status != AttendanceStatus.INVALID

    @property
    def display(self) -> str:
        if not self.is_valid:
            if self.raw is None or self.raw == "":
                return "No attendance"
            return f"Invalid attendance: {self.raw}"
        if self.overtime_hours > 0:
            return f"{self.status.value} + {self.overtime_hours}h overtime"
        return self.status.value


class AttendanceCodec:
    @staticmethod
    def encode(present: bool, overtime_hours: int = 0) -> str:
        hours = int(overtime_hours)
        if hours < 0 or hours > MAX_OVERTIME_HOURS_PER_DAY:
            raise ValidationError(f"Overtime hours must be between 0 and {MAX_OVERTIME_HOURS_PER_DAY}")
        letter = "P" if present else "A"
        return f"{letter}{hours}" if hours else letter

    @staticmethod
    def decode(code: Any) -> DecodedAttendance:
        """Decode a day code. Never raises: bad input decodes as INVALID."""
        if not isinstance(code, str) or not code:
            if code is not None and code != "":
                logger.warning("Invalid attendance entry %r, skipping", code)
            return DecodedAttendance(status=AttendanceStatus.INVALID, overtime_hours=0, raw=code)

        match = _CODE_RE.match(code.strip())
        if not match:
            logger.warning("Malformed attendance code %r", code)
            return DecodedAttendance(status=AttendanceStatus.INVALID, overtime_hours=0, raw=code)

        status = AttendanceStatus.PRESENT if match.group(1) == "P" else AttendanceStatus.ABSENT
        hours = int(match.group(2)) if match.group(2) else 0
        if hours > MAX_OVERTIME_HOURS_PER_DAY:
            logger.warning("Invalid overtime hours %s in %r, ignoring overtime", hours, code)
            hours = 0
        return DecodedAttendance(status=status, overtime_hours=hours, raw=code)


def decode_attendance(code: Any) -> DecodedAttendance:
    return AttendanceCodec.decode(code)
