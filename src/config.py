import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./compliance.db")

SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
BLOB_STORAGE_DIR = os.getenv("BLOB_STORAGE_DIR", "storage")

# "log" keeps every email in the application log, "resend" delivers it
EMAIL_PROVIDER = os.getenv("EMAIL_PROVIDER", "log")
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
EMAIL_SENDER = os.getenv("EMAIL_SENDER", "Compliance Documents <noreply@example.com>")

STORAGE_READ_ATTEMPTS = int(os.getenv("STORAGE_READ_ATTEMPTS", "3"))
DOCUMENT_VALIDITY_DAYS = int(os.getenv("DOCUMENT_VALIDITY_DAYS", "365"))
DEFAULT_ANNUAL_LIMIT = float(os.getenv("DEFAULT_ANNUAL_LIMIT", "5000"))
ANNUAL_LIMIT_WARNING_RATIO = 0.8

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

SEED_ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@example.com")
SEED_ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "admin123")
