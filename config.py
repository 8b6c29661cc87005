"""
Central configuration — reads from .env file.

Every module reads `config.X` at call time (never copies the value at import),
so tests and embedding applications can override a setting with a plain
attribute assignment.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# ── Model providers ───────────────────────────────────────────────────────────
# Add keys for whichever providers you have access to.
GOOGLE_API_KEY: str | None    = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
OPENAI_API_KEY: str | None    = os.getenv("OPENAI_API_KEY")
ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")

# Which provider answers the prompts:
#   auto       → first provider with a key, in the order gemini → openai → anthropic
#   gemini     → Google Gemini (google-genai SDK)
#   openai     → OpenAI chat completions
#   anthropic  → Anthropic messages API
MODEL_PROVIDER: str = os.getenv("MODEL_PROVIDER", "auto")

GEMINI_MODEL: str    = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
OPENAI_MODEL: str    = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
ANTHROPIC_MODEL: str = os.getenv("ANTHROPIC_MODEL", "claude-3-haiku-20240307")

MODEL_MAX_OUTPUT_TOKENS: int = int(os.getenv("MODEL_MAX_OUTPUT_TOKENS", "2048"))
# Upper bound for a single model call; the SDK defaults are several minutes.
MODEL_TIMEOUT_SECS: float    = float(os.getenv("MODEL_TIMEOUT_SECS", "60"))

# ── Image acquisition ─────────────────────────────────────────────────────────
MAX_IMAGE_BYTES: int   = int(os.getenv("MAX_IMAGE_BYTES", str(4 * 1024 * 1024)))
MIN_IMAGE_BYTES: int   = int(os.getenv("MIN_IMAGE_BYTES", "100"))
ENCODE_CHUNK_SIZE: int = int(os.getenv("ENCODE_CHUNK_SIZE", "8192"))
IMAGE_FETCH_TIMEOUT_SECS: float = float(os.getenv("IMAGE_FETCH_TIMEOUT_SECS", "15"))

# Used once when the direct fetch fails at the network level.
# The proxy must echo the raw image bytes; the target URL is appended URL-encoded.
CORS_PROXY_URL: str = os.getenv("CORS_PROXY_URL", "https://api.allorigins.win/raw?url=")

SUPPORTED_IMAGE_TYPES: tuple[str, ...] = (
    "image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif",
)

# ── Product catalog ───────────────────────────────────────────────────────────
# Minimum spacing between two catalog searches (external API limit).
CATALOG_REQUEST_DELAY_SECS: float = float(os.getenv("CATALOG_REQUEST_DELAY_SECS", "1.0"))
CATALOG_MAX_RESULTS: int          = int(os.getenv("CATALOG_MAX_RESULTS", "5"))
PRODUCTS_PER_GROUP: int           = int(os.getenv("PRODUCTS_PER_GROUP", "3"))
MAX_RECOMMENDATION_GROUPS: int    = int(os.getenv("MAX_RECOMMENDATION_GROUPS", "3"))

# Appended as ?tag=... to every affiliate URL when set.
AMAZON_ASSOCIATE_TAG: str | None = os.getenv("AMAZON_ASSOCIATE_TAG") or None

# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL: str       = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE: str | None = os.getenv("LOG_FILE") or None
