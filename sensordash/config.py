from __future__ import annotations
import os

# Base URL of the sensor Gateway the client talks to
API_URL = os.getenv("SENSORDASH_API_URL", "http://localhost:8080").rstrip("/")

# Per-request transport timeout in seconds, surfaced as NetworkError when exceeded
HTTP_TIMEOUT = float(os.getenv("SENSORDASH_HTTP_TIMEOUT", "10"))

# Query cache retry policy for network failures (0 disables retries)
QUERY_RETRY = int(os.getenv("SENSORDASH_QUERY_RETRY", "3"))
QUERY_RETRY_DELAY = float(os.getenv("SENSORDASH_QUERY_RETRY_DELAY", "1.0"))
QUERY_MAX_RETRY_DELAY = float(os.getenv("SENSORDASH_QUERY_MAX_RETRY_DELAY", "30.0"))

# Simulated Gateway settings
SIM_SENSORS = [
    int(s) for s in os.getenv("SENSORDASH_SIM_SENSORS", "1,2,3").split(",") if s.strip()
]
SIM_HISTORY = int(os.getenv("SENSORDASH_SIM_HISTORY", "24"))
# Seconds between simulated readings (also the spacing of the seeded history)
SIM_INTERVAL = float(os.getenv("SENSORDASH_SIM_INTERVAL", "60"))
PORT = int(os.getenv("PORT", "8080"))
