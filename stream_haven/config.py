# stream_haven/config.py
# Runtime configuration + static lookup tables for Stream Haven.
# Values come from the environment (optionally a .env file next to the package).

import os

from dotenv import load_dotenv

BASE_DIR = os.path.dirname(__file__)
load_dotenv(os.path.join(BASE_DIR, ".env"))


class Config:
    """
    Settings read once from the environment. Instances can be overridden
    per app (create_app(config={...})) or per test.
    """

    APP_NAME = "Stream Haven"
    VERSION = "2.0.0"

    # Where the local storage files live (database snapshot, session, theme).
    STORAGE_DIR = os.getenv(
        "STREAM_HAVEN_STORAGE_DIR", os.path.join(os.path.expanduser("~"), ".stream_haven")
    )
    # Seconds to wait for the record store before failing with NotReady.
    STORE_READY_TIMEOUT = float(os.getenv("STREAM_HAVEN_READY_TIMEOUT", "5"))

    DEFAULT_ACCOUNT_NAME = "Main Account"
    DEFAULT_ACCOUNT_COLOR = "#7c3aed"
    DEFAULT_THEME = "lavender"
    DEFAULT_THEME_MODE = "dark"
    MIN_PASSWORD_LENGTH = int(os.getenv("STREAM_HAVEN_MIN_PASSWORD_LENGTH", "6"))
    # Any werkzeug generate_password_hash method ("scrypt", "pbkdf2:sha256", ...).
    PASSWORD_HASH_METHOD = os.getenv("STREAM_HAVEN_PASSWORD_HASH_METHOD", "scrypt")
    MAX_ACCOUNTS = int(os.getenv("STREAM_HAVEN_MAX_ACCOUNTS", "10"))

    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    HOST = os.getenv("STREAM_HAVEN_HOST", "127.0.0.1")
    PORT = int(os.getenv("STREAM_HAVEN_PORT", "5001"))

    def __init__(self, **overrides):
        for key, value in overrides.items():
            if not hasattr(type(self), key):
                raise AttributeError(f"Unknown config option: {key}")
            setattr(self, key, value)


# Local storage keys (one file each under STORAGE_DIR).
DATABASE_KEY = "stream_haven_database"
SESSION_KEY = "stream_haven_session"
THEME_KEY = "stream_haven_theme"
THEME_MODE_KEY = "stream_haven_theme_mode"


THEMES = {
    "lavender": {"name": "Lavender", "color": "#c4b5fd"},
    "rose": {"name": "Rose", "color": "#fda4af"},
    "mint": {"name": "Mint", "color": "#86efac"},
    "sky": {"name": "Sky", "color": "#7dd3fc"},
    "peach": {"name": "Peach", "color": "#fdba74"},
    "coral": {"name": "Coral", "color": "#f9a8d4"},
    "lemon": {"name": "Lemon", "color": "#fde047"},
    "aqua": {"name": "Aqua", "color": "#5eead4"},
}

THEME_MODES = ("dark", "light")

PLATFORMS = {
    "twitch": {"name": "Twitch", "icon": "🟣", "color": "#9146ff"},
    "youtube": {"name": "YouTube", "icon": "🔴", "color": "#ff0000"},
    "tiktok": {"name": "TikTok", "icon": "⚫", "color": "#000000"},
    "instagram": {"name": "Instagram", "icon": "🟠", "color": "#e4405f"},
}

CONTENT_TYPES = {
    "stream": {"name": "Stream", "icon": "🎥"},
    "video": {"name": "Video", "icon": "📹"},
    "short": {"name": "Short", "icon": "⏱️"},
    "post": {"name": "Post", "icon": "📝"},
}

CONTENT_STATUSES = {
    "idea": {"name": "Idea", "color": "#60a5fa"},
    "planning": {"name": "Planning", "color": "#a78bfa"},
    "recording": {"name": "Recording", "color": "#f59e0b"},
    "editing": {"name": "Editing", "color": "#f97316"},
    "published": {"name": "Published", "color": "#10b981"},
}

PRIORITIES = ("low", "medium", "high")

# Fallback colours for calendar events whose platform/status is unknown.
DEFAULT_STREAM_COLOR = "#7c3aed"
DEFAULT_CONTENT_COLOR = "#60a5fa"
