import os

# Backing store
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "gatepass")

# Tokens
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")
JWT_ALGO = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 8)))
QR_SECRET = os.getenv("QR_SECRET", JWT_SECRET)
QR_VALIDITY_HOURS = 24

# System defaults, used only when the store holds no configuration yet
DEFAULT_CAPACITY = int(os.getenv("DEFAULT_CAPACITY", "60"))
DEFAULT_WINDOW_OPEN = os.getenv("DEFAULT_WINDOW_OPEN", "true").lower() in {"1", "true", "yes"}
OPENING_TIME = os.getenv("OPENING_TIME", "17:00")
REQUESTED_OUT_TIME = "after 5 PM"

NOTIFICATION_FEED_SIZE = int(os.getenv("NOTIFICATION_FEED_SIZE", "50"))

# Logging
LOG_FILE = os.getenv("LOG_FILE", "gatepass.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

PORT = int(os.getenv("PORT", 8000))
