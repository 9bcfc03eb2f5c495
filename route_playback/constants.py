"""
Constants for Vehicle Route Playback

This module defines the Route Data Service endpoints, playback defaults and
geodesy constants used throughout the route playback engine. Deployment
settings can be overridden with environment variables (or a .env file).
"""

import os
from dotenv import load_dotenv

load_dotenv()

# Route Data Service
ROUTE_SERVICE_URL = os.getenv("ROUTE_SERVICE_URL", "http://localhost:8000")
ROUTE_SERVICE_TOKEN = os.getenv("ROUTE_SERVICE_TOKEN")
ROUTE_SERVICE_TIMEOUT_S = float(os.getenv("ROUTE_SERVICE_TIMEOUT_S", "30"))

STORED_ROUTE_PATH = "/api/protected/GetVehicleRouteByTrip"
ROUTE_BY_DATE_PATH = "/api/protected/GetVehicleRouteByDate"
STORE_ROUTE_PATH = "/api/protected/StoreVehicleRouteData"

LOG_LEVEL = os.getenv("ROUTE_PLAYBACK_LOG_LEVEL", "INFO")

# Open playback sessions kept by the web app; the oldest is closed beyond this
MAX_OPEN_SESSIONS = int(os.getenv("ROUTE_PLAYBACK_MAX_SESSIONS", "50"))

# Geodesy
EARTH_RADIUS_KM = 6371.0

# Date range composition ("YYYY/MM/DD HH:mm:ss")
DATETIME_FORMAT = "%Y/%m/%d %H:%M:%S"
DEFAULT_FROM_TIME = "00:00:00"
DEFAULT_TO_TIME = "23:59:59"

# Playback
DEFAULT_SPEED_MS = 1000
SPEED_OPTIONS = [
    (3000, "0.33x"),
    (2000, "0.5x"),
    (1000, "1x"),
    (500, "2x"),
    (250, "4x"),
    (100, "10x"),
    (50, "20x"),
]

# Map
DEFAULT_FOCUS_ZOOM = 16
BASE_LAYERS = ("street", "satellite")
