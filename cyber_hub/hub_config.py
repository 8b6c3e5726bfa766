import logging
import os
from google.oauth2 import service_account
from google.auth import default as google_auth_default
from sqlalchemy import create_engine

from dotenv import load_dotenv
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger("cyber_hub")

# --- Configuration ---
PROJECT_ID = os.getenv("GOOGLE_CLOUD_PROJECT", "your-project-id")
REGION = os.getenv("GOOGLE_CLOUD_REGION", "us-central1")

HUB_DATABASE_URL    = os.environ.get("HUB_DATABASE_URL", "sqlite:///cyber_hub.db")
HUB_STORAGE_KEY     = os.environ.get("HUB_STORAGE_KEY", "quantum_cyber_hub_v3")
HUB_POLICY_PATH     = os.environ.get("HUB_POLICY_PATH")

AUDIT_MODEL         = os.environ.get("AUDIT_MODEL", "gemini-3-flash-preview")
SYNTHESIS_MODEL     = os.environ.get("SYNTHESIS_MODEL", "gemini-3-pro-preview")
THREAT_MODEL        = os.environ.get("THREAT_MODEL", AUDIT_MODEL)
IMAGE_MODEL         = os.environ.get("IMAGE_MODEL", "imagen-3.0-generate-002")

LLM_TIMEOUT         = float(os.environ["LLM_TIMEOUT"]) if os.environ.get("LLM_TIMEOUT") else None
LLM_RETRIES         = int(os.environ.get("LLM_RETRIES", "1"))

HUB_HOST            = os.environ.get("HUB_HOST", "0.0.0.0")
HUB_PORT            = int(os.environ.get("HUB_PORT", "8000"))


def build_creds():
    """
    Service account file when GOOGLE_APPLICATION_CREDENTIALS points to one,
    application default credentials otherwise.
    """
    key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    scopes = ["https://www.googleapis.com/auth/cloud-platform"]
    if key_path and os.path.exists(key_path):
        return service_account.Credentials.from_service_account_file(key_path, scopes=scopes)
    creds, _ = google_auth_default(scopes=scopes)
    return creds


def get_db_engine(url: str | None = None):
    url = url or HUB_DATABASE_URL
    logger.info(f"[DB] Using storage URL: {url}")
    if url.startswith("sqlite"):
        # the FastAPI worker threads share one engine
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)

