import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 7860))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Comma separated list, "*" allows every origin
ALLOWED_ORIGINS = [origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",") if origin.strip()]

ROOM_CODE_LENGTH = int(os.getenv("ROOM_CODE_LENGTH", 6))
ROOM_IDLE_SECONDS = int(os.getenv("ROOM_IDLE_SECONDS", 30 * 60))
SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", 30 * 60))

# Per-connection outbound buffer; messages beyond this are dropped
OUTBOUND_QUEUE_SIZE = int(os.getenv("OUTBOUND_QUEUE_SIZE", 64))
