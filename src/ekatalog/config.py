# src/ekatalog/config.py
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------
# Record Store
# ---------------------------------------------------------
DATA_DIR = Path(os.getenv("EKATALOG_DATA_DIR", "data"))

# Read-modify-write attempts before a revision conflict is surfaced
WRITE_RETRIES = int(os.getenv("EKATALOG_WRITE_RETRIES", "3"))

# Collections served by the generic CRUD router
COLLECTIONS = [
    c.strip()
    for c in os.getenv(
        "EKATALOG_COLLECTIONS",
        "users,branches,categories,products,items,member_tiers,wa_accounts",
    ).split(",")
    if c.strip()
]

MEMBERS_COLLECTION = "members"
USERS_COLLECTION = "users"

# ---------------------------------------------------------
# Sync Client
# ---------------------------------------------------------
API_URL = os.getenv("EKATALOG_API_URL", "http://127.0.0.1:8000")
CACHE_DIR = Path(
    os.getenv("EKATALOG_CACHE_DIR", str(Path.home() / ".cache" / "ekatalog"))
)
REQUEST_TIMEOUT = float(os.getenv("EKATALOG_REQUEST_TIMEOUT", "10"))

# ---------------------------------------------------------
# Server
# ---------------------------------------------------------
HOST = os.getenv("EKATALOG_HOST", "127.0.0.1")
PORT = int(os.getenv("EKATALOG_PORT", "8000"))
