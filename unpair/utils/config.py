"""Application settings read from the environment."""

import os


class AppConfig:
    """Centralized application configuration."""

    SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")
    SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")
    STORAGE_BUCKET = os.environ.get("STORAGE_BUCKET", "images")
    MIN_PASSWORD_LENGTH = int(os.environ.get("MIN_PASSWORD_LENGTH", "6"))
    FEED_PAGE_SIZE = int(os.environ.get("FEED_PAGE_SIZE", "50"))
    LIVE_QUERY_INTERVAL_SECONDS = float(os.environ.get("LIVE_QUERY_INTERVAL_SECONDS", "2"))

    # Table names
    USERS_TABLE = "users"
    LISTINGS_TABLE = "listings"
    REQUESTS_TABLE = "search_requests"
    NOTIFICATIONS_TABLE = "notifications"
    CONVERSATIONS_TABLE = "conversations"
    MESSAGES_TABLE = "messages"
    SUBMISSION_KEYS_TABLE = "submission_keys"


# Values offered by the size picker in the app
SNEAKER_SIZES = (
    "5", "5.5", "6", "6.5", "7", "7.5", "8", "8.5", "9", "9.5",
    "10", "10.5", "11", "11.5", "12", "12.5", "13", "13.5", "14", "14.5", "15",
)
