"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

HOURS_PER_OVERTIME_DAY = 8
MAX_OVERTIME_HOURS_PER_DAY = 24

MIN_YEAR = 2000
MAX_YEAR = 2100

DEFAULT_MAX_RECALCULATION_DEPTH = 50
DEFAULT_LEDGER_PAGE_SIZE = 50
MAX_LEDGER_PAGE_SIZE = 500

EMPLOYEE_ID_PREFIX = "EMP"
EMPLOYEE_ID_DIGITS = 3

SYNTHETIC_KEY_REMARK_LENGTH = 20
LEGACY_CREATED_BY = "legacy_system"
SYSTEM_ACTOR = "System"

DEFAULT_DISPLAY_TIMEZONE = "Asia/Kolkata"
CURRENCY_SYMBOL = "₹"
