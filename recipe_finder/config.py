import os

# Environment driven settings, read once at import time.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./recipes.db")

# Deadline for every single storage call made while searching
SEARCH_TIMEOUT_SECONDS = float(os.getenv("SEARCH_TIMEOUT_SECONDS", "5.0"))

SIMILAR_DEFAULT_LIMIT = int(os.getenv("SIMILAR_DEFAULT_LIMIT", "5"))
SIMILAR_MAX_LIMIT = int(os.getenv("SIMILAR_MAX_LIMIT", "50"))

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv(
        "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(",")
    if o.strip()
]

LOG_LEVEL = os.getenv("RECIPE_FINDER_LOG_LEVEL", "INFO").upper()

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "level": LOG_LEVEL,
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
}
