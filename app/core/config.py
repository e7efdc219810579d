import os

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./infox.db")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Security (tokens are issued by the external auth provider, verified here)
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

# ✅ OpenAI
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
DEFAULT_CHAT_MODEL = os.getenv("DEFAULT_CHAT_MODEL", "gpt-4o-mini")
REASONING_CHAT_MODEL = os.getenv("REASONING_CHAT_MODEL", "o3-mini")
TITLE_MODEL = os.getenv("TITLE_MODEL", "gpt-4o-mini")
MAX_TOOL_STEPS = int(os.getenv("MAX_TOOL_STEPS", "5"))

# ✅ Plan limits (per UTC day)
FREE_PLAN_SEARCHES_PER_DAY = int(os.getenv("FREE_PLAN_SEARCHES_PER_DAY", "10"))
FREE_PLAN_DEEP_SEARCHES_PER_DAY = int(os.getenv("FREE_PLAN_DEEP_SEARCHES_PER_DAY", "2"))
PRO_PLAN_SEARCHES_PER_DAY = int(os.getenv("PRO_PLAN_SEARCHES_PER_DAY", "100"))
PRO_PLAN_DEEP_SEARCHES_PER_DAY = int(os.getenv("PRO_PLAN_DEEP_SEARCHES_PER_DAY", "20"))

# ✅ Message caps (rolling 24h)
GUEST_MAX_MESSAGES_PER_DAY = int(os.getenv("GUEST_MAX_MESSAGES_PER_DAY", "10"))
REGULAR_MAX_MESSAGES_PER_DAY = int(os.getenv("REGULAR_MAX_MESSAGES_PER_DAY", "1000"))

# ✅ Guests
GUEST_EMAIL_DOMAIN = os.getenv("GUEST_EMAIL_DOMAIN", "guest.local")
GUEST_USAGE_TTL_SECONDS = int(os.getenv("GUEST_USAGE_TTL_SECONDS", str(24 * 60 * 60)))
GUEST_USAGE_BACKEND = os.getenv("GUEST_USAGE_BACKEND", "memory")  # memory | redis

# ✅ Resumable streams
STREAM_BACKEND = os.getenv("STREAM_BACKEND", "memory")  # memory | redis | none
REDIS_URL = os.getenv("REDIS_URL", "")
STREAM_REPLAY_TTL_SECONDS = int(os.getenv("STREAM_REPLAY_TTL_SECONDS", "300"))

# ✅ Tools
SEARXNG_URL = os.getenv("SEARXNG_URL", "https://searx.be")
SEARXNG_TIMEOUT = float(os.getenv("SEARXNG_TIMEOUT", "15"))
SEARXNG_RETRY_COUNT = int(os.getenv("SEARXNG_RETRY_COUNT", "3"))
SEARXNG_RETRY_DELAY = float(os.getenv("SEARXNG_RETRY_DELAY", "1"))
SEARXNG_RESULTS_COUNT = int(os.getenv("SEARXNG_RESULTS_COUNT", "8"))
SEARXNG_DEEP_RESULTS_COUNT = int(os.getenv("SEARXNG_DEEP_RESULTS_COUNT", "20"))
SEARXNG_ENGINES = os.getenv("SEARXNG_ENGINES", "google,bing,brave,duckduckgo,wikipedia").split(",")
SEARXNG_IMAGE_ENGINES = os.getenv("SEARXNG_IMAGE_ENGINES", "google_images,bing_images").split(",")
SEARXNG_VIDEO_ENGINES = os.getenv("SEARXNG_VIDEO_ENGINES", "youtube,google_videos").split(",")
SEARXNG_MEDIA_RESULTS_COUNT = int(os.getenv("SEARXNG_MEDIA_RESULTS_COUNT", "10"))
SEARXNG_DEEP_MEDIA_RESULTS_COUNT = int(os.getenv("SEARXNG_DEEP_MEDIA_RESULTS_COUNT", "20"))
SEARXNG_LANGUAGE = os.getenv("SEARXNG_LANGUAGE", "all")
WEATHER_API_URL = os.getenv("WEATHER_API_URL", "https://api.open-meteo.com/v1/forecast")

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_PRICE_ID_PRO = os.getenv("STRIPE_PRICE_ID_PRO")

# ✅ App
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
