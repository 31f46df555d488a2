import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# ------------------ Database ------------------
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite://db.sqlite3")

# ------------------ Logging ------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ------------------ Phone numbers ------------------
# ISO region used for domestic numbers (AU -> +61, trunk prefix 0)
PHONE_DEFAULT_REGION = os.getenv("PHONE_DEFAULT_REGION", "AU").upper()
PHONE_NATIONAL_NUMBER_LENGTH = int(os.getenv("PHONE_NATIONAL_NUMBER_LENGTH", "9"))

# ------------------ Calling hours ------------------
CALLING_TIMEZONE = os.getenv("CALLING_TIMEZONE", "Australia/Sydney")
CALLING_HOURS_START = os.getenv("CALLING_HOURS_START", "07:00")
CALLING_HOURS_END = os.getenv("CALLING_HOURS_END", "21:30")

# ------------------ Booking workflow ------------------
MAX_PATIENT_ATTEMPTS = int(os.getenv("MAX_PATIENT_ATTEMPTS", "3"))
URGENT_TASK_PRIORITY = int(os.getenv("URGENT_TASK_PRIORITY", "9"))
NORMAL_TASK_PRIORITY = int(os.getenv("NORMAL_TASK_PRIORITY", "5"))
AGENT_ACTOR_NAME = os.getenv("AGENT_ACTOR_NAME", "AI Booking Agent")

# ------------------ Retry scheduler ------------------
PATIENT_RETRY_SCHED_ENABLED = _flag("PATIENT_RETRY_SCHED_ENABLED")
PATIENT_RETRY_INTERVAL_MINUTES = int(os.getenv("PATIENT_RETRY_INTERVAL_MINUTES", "10"))
APS_TIMEZONE = os.getenv("APS_TIMEZONE", "UTC")
APS_MISFIRE_GRACE_SECONDS = int(os.getenv("APS_MISFIRE_GRACE_SECONDS", "60"))

# ------------------ Identity resolver ------------------
MATCH_AUTO_THRESHOLD = float(os.getenv("MATCH_AUTO_THRESHOLD", "0.9"))
MATCH_CONFIRM_THRESHOLD = float(os.getenv("MATCH_CONFIRM_THRESHOLD", "0.6"))
MATCH_FLOOR = float(os.getenv("MATCH_FLOOR", "0.5"))
MATCH_GIVEN_WEIGHT = float(os.getenv("MATCH_GIVEN_WEIGHT", "0.4"))
MATCH_FAMILY_WEIGHT = float(os.getenv("MATCH_FAMILY_WEIGHT", "0.6"))
MATCH_GIVEN_EXACT_BONUS = float(os.getenv("MATCH_GIVEN_EXACT_BONUS", "0.2"))
MATCH_PHONETIC_BONUS = float(os.getenv("MATCH_PHONETIC_BONUS", "0.3"))
MATCH_MAX_SUGGESTIONS = int(os.getenv("MATCH_MAX_SUGGESTIONS", "3"))

# ------------------ Incident intake ------------------
# Incidents need a non-null employer; unresolved reports land here and get flagged.
DEFAULT_EMPLOYER_ID = int(os.getenv("DEFAULT_EMPLOYER_ID", "1"))
FOLLOW_UP_BOOKING_DELAY_MINUTES = int(os.getenv("FOLLOW_UP_BOOKING_DELAY_MINUTES", "30"))
FOLLOW_UP_BOOKING_PRIORITY = int(os.getenv("FOLLOW_UP_BOOKING_PRIORITY", "2"))

# ------------------ Retell ------------------
RETELL_API_KEY = os.getenv("RETELL_API_KEY", "")
RETELL_API_BASE = os.getenv("RETELL_API_BASE", "https://api.retellai.com").rstrip("/")
RETELL_PHONE_NUMBER = os.getenv("RETELL_PHONE_NUMBER", "")
RETELL_TIMEOUT_SECONDS = float(os.getenv("RETELL_TIMEOUT_SECONDS", "30"))

RETELL_BOOKING_AGENT_ID = os.getenv("RETELL_BOOKING_AGENT_ID", "")
RETELL_CHECKIN_AGENT_ID = os.getenv("RETELL_CHECKIN_AGENT_ID", "")
RETELL_REMINDER_AGENT_ID = os.getenv("RETELL_REMINDER_AGENT_ID", "")
RETELL_SURVEY_AGENT_ID = os.getenv("RETELL_SURVEY_AGENT_ID", "")
RETELL_INCIDENT_AGENT_ID = os.getenv("RETELL_INCIDENT_AGENT_ID", "")
