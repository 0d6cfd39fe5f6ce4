import os
from pathlib import Path
from dotenv import load_dotenv

# --- Base Directory ---
BASE_DIR = Path(__file__).resolve().parent.parent

# --- Load Environment Variables ---
load_dotenv(BASE_DIR / ".env")


def _get_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


def _get_float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


def _get_list(name: str) -> list[str]:
    """Reads a comma separated variable into a list, dropping blank entries."""
    raw = os.getenv(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


# --- Path Configuration ---
REPORTS_DIR = BASE_DIR / os.getenv("REPORTS_DIR", "reports")
EXPORT_DIR = BASE_DIR / os.getenv("EXPORT_DIR", "output")
LOG_DIR = BASE_DIR / os.getenv("LOG_DIR", "logs")

# --- Source A: Brightpearl (order management) ---
BRIGHTPEARL_BASE_URL = os.getenv(
    "BRIGHTPEARL_BASE_URL", "https://use1.brightpearlconnect.com/public-api"
)
BRIGHTPEARL_ACCOUNT = os.getenv("BRIGHTPEARL_ACCOUNT")
BRIGHTPEARL_APP_REF = os.getenv("BRIGHTPEARL_APP_REF")
BRIGHTPEARL_TOKEN = os.getenv("BRIGHTPEARL_TOKEN")

# --- Source B: Infoplus (warehouse management) ---
INFOPLUS_COMPANY_ID = os.getenv("INFOPLUS_COMPANY_ID", "texon")
INFOPLUS_BASE_URL = os.getenv(
    "INFOPLUS_BASE_URL",
    f"https://{INFOPLUS_COMPANY_ID}.infopluswms.com/infoplus-wms/api",
)
INFOPLUS_API_VERSION = os.getenv("INFOPLUS_API_VERSION", "beta")
INFOPLUS_API_KEY = os.getenv("INFOPLUS_API_KEY")
INFOPLUS_LOB_ID = os.getenv("INFOPLUS_LOB_ID", "1")

# --- Paging & Rate Limits ---
# The availability endpoint is more expensive than the catalog, hence the smaller batch.
BRIGHTPEARL_PAGE_SIZE = _get_int("BRIGHTPEARL_PAGE_SIZE", 500)
BRIGHTPEARL_MAX_PAGES = _get_int("BRIGHTPEARL_MAX_PAGES", 10)
BRIGHTPEARL_BATCH_SIZE = _get_int("BRIGHTPEARL_BATCH_SIZE", 50)
BRIGHTPEARL_BATCH_DELAY = _get_float("BRIGHTPEARL_BATCH_DELAY", 0.5)
INFOPLUS_PAGE_SIZE = _get_int("INFOPLUS_PAGE_SIZE", 250)
INFOPLUS_MAX_PAGES = _get_int("INFOPLUS_MAX_PAGES", 20)
PAGE_DELAY = _get_float("PAGE_DELAY", 0.2)

# --- Retry ---
RETRY_ATTEMPTS = _get_int("RETRY_ATTEMPTS", 2)  # extra attempts after the first
RETRY_BACKOFF_SECONDS = _get_float("RETRY_BACKOFF_SECONDS", 2.0)
REQUEST_TIMEOUT = _get_float("REQUEST_TIMEOUT", 30.0)

# --- Notifications ---
EMAIL_RECIPIENTS = _get_list("EMAIL_RECIPIENTS")
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = _get_int("SMTP_PORT", 587)
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
SMTP_FROM = os.getenv("SMTP_FROM") or SMTP_USER
SMTP_SECURE = os.getenv("SMTP_SECURE", "false").lower() == "true"
WEBHOOK_URL = os.getenv("WEBHOOK_URL")
NOTIFY_TOP_N = _get_int("NOTIFY_TOP_N", 20)

# --- Shared Business Logic ---
# SKUs that are known to differ on purpose (samples, kits, ...) and are never reported.
IGNORED_SKUS = _get_list("IGNORED_SKUS")
SUMMARY_LIMIT = _get_int("SUMMARY_LIMIT", 50)
UNKNOWN_PRODUCT = "Unknown Product"


def config_status() -> dict[str, bool]:
    """Reports which integrations have enough configuration to be used."""
    brightpearl = bool(BRIGHTPEARL_ACCOUNT and BRIGHTPEARL_APP_REF and BRIGHTPEARL_TOKEN)
    infoplus = bool(INFOPLUS_API_KEY)
    email = bool(SMTP_HOST and SMTP_USER and SMTP_PASS)
    return {
        "brightpearl_configured": brightpearl,
        "infoplus_configured": infoplus,
        "email_configured": email,
        "webhook_configured": bool(WEBHOOK_URL),
        "overall_ready": brightpearl and infoplus,
    }
