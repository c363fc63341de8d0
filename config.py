import os

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

DATABASE_URL: str | None = os.getenv("DATABASE_URL")
DB_POOL_MIN_SIZE: int = int(os.getenv("DB_POOL_MIN_SIZE", "1"))
DB_POOL_MAX_SIZE: int = int(os.getenv("DB_POOL_MAX_SIZE", "5"))

# ---------------------------------------------------------------------------
# Admin auth
# ---------------------------------------------------------------------------

ADMIN_USERNAME: str | None = os.getenv("ADMIN_USERNAME")
ADMIN_PASSWORD: str | None = os.getenv("ADMIN_PASSWORD")

# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

# Waiting sessions older than this are offered for cleanup.
STALE_SESSION_MINUTES: int = int(os.getenv("STALE_SESSION_MINUTES", "60"))

TOP_N: int = int(os.getenv("TOP_N", "5"))
DEFAULT_PAGE_SIZE: int = int(os.getenv("DEFAULT_PAGE_SIZE", "15"))

# Upper bound on ids per batch lookup query.
LOOKUP_CHUNK_SIZE: int = int(os.getenv("LOOKUP_CHUNK_SIZE", "200"))
