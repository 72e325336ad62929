import os

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "site_payroll"),
}

DEBUG = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# If enabled, app will apply schema.sql on startup (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "1")))

# Overtime policy used when a request does not pick one: "default" or "special"
CALCULATION_POLICY = os.getenv("CALCULATION_POLICY", "default")
MAX_RECALCULATION_DEPTH = int(os.getenv("MAX_RECALCULATION_DEPTH", "50"))
# Employees swept in parallel during batch correction (each employee stays sequential)
RECALCULATION_WORKERS = int(os.getenv("RECALCULATION_WORKERS", "1"))
DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "Asia/Kolkata")
