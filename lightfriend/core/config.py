import os

from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def require_env(name: str) -> str:
    """Return a required environment value, failing loudly when it is unset."""
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"{name} must be set")
    return value


# ✅ Runtime
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "1") == "1"
SERVER_URL = os.getenv("SERVER_URL", "http://localhost:3000")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:8080")

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./database.db")

# ✅ Security
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")

# ✅ Usage rates (US numbers use the *_US variants)
MESSAGE_COST = _float_env("MESSAGE_COST", 0.30)
MESSAGE_COST_US = _float_env("MESSAGE_COST_US", 0.15)
VOICE_SECOND_COST = _float_env("VOICE_SECOND_COST", 0.005)
VOICE_SECOND_COST_US = _float_env("VOICE_SECOND_COST_US", 0.0033)
NOTIFICATION_COST = _float_env("NOTIFICATION_COST", 0.15)
NOTIFICATION_COST_US = _float_env("NOTIFICATION_COST_US", 0.075)
DEFAULT_CHARGE_BACK_AMOUNT = _float_env("DEFAULT_CHARGE_BACK_AMOUNT", 5.00)

# ✅ LLM (OpenAI-compatible endpoint)
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
LLM_MODEL = os.getenv("LLM_MODEL", "openai/gpt-4o")
PERPLEXITY_API_KEY = os.getenv("PERPLEXITY_API_KEY")
FIRECRAWL_API_KEY = os.getenv("FIRECRAWL_API_KEY")

# ✅ Twilio
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
SHAZAM_PHONE_NUMBER = os.getenv("SHAZAM_PHONE_NUMBER")
USA_PHONE = os.getenv("USA_PHONE")
FIN_PHONE = os.getenv("FIN_PHONE")
NLD_PHONE = os.getenv("NLD_PHONE")

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")

# ✅ Lemon Squeezy
LEMON_SQUEEZY_API_KEY = os.getenv("LEMON_SQUEEZY_API_KEY")
LEMON_SQUEEZY_STORE_ID = os.getenv("LEMON_SQUEEZY_STORE_ID")
LEMON_SQUEEZY_VARIANT_ID = os.getenv("LEMON_SQUEEZY_VARIANT_ID")
LEMON_SQUEEZY_WEBHOOK_SECRET = os.getenv("LEMON_SQUEEZY_WEBHOOK_SECRET")

# ✅ Paddle
PADDLE_API_KEY = os.getenv("PADDLE_API_KEY")
PADDLE_API_URL = os.getenv("PADDLE_API_URL", "https://api.paddle.com")
PADDLE_WEBHOOK_SECRET = os.getenv("PADDLE_WEBHOOK_SECRET")
PADDLE_TIER_1_PRICE_ID = os.getenv("PADDLE_TIER_1_PRICE_ID")
PADDLE_TIER_2_PRICE_ID = os.getenv("PADDLE_TIER_2_PRICE_ID")
PADDLE_ZERO_SUB_PRICE_ID = os.getenv("ZERO_SUB_PRICE_ID")
PADDLE_IQ_USAGE_PRICE_ID = os.getenv("IQ_USAGE_PRICE_ID")

# ✅ Unipile
UNIPILE_API_URL = os.getenv("UNIPILE_API_URL")
UNIPILE_API_KEY = os.getenv("UNIPILE_API_KEY")
UNIPILE_WEBHOOK_SECRET = os.getenv("UNIPILE_WEBHOOK_SECRET")

# ✅ Langfuse
LANGFUSE_HOST = os.getenv("LANGFUSE_HOST", "https://cloud.langfuse.com")
LANGFUSE_PUBLIC_KEY = os.getenv("LANGFUSE_PUBLIC_KEY")
LANGFUSE_SECRET_KEY = os.getenv("LANGFUSE_SECRET_KEY")

# ✅ Maps
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
GEOAPIFY_API_KEY = os.getenv("GEOAPIFY_API_KEY")

# ✅ ElevenLabs
ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY")
ELEVENLABS_API_URL = os.getenv("ELEVENLABS_API_URL", "https://api.elevenlabs.io")

# ✅ Matrix / WhatsApp bridge
MATRIX_HOMESERVER = os.getenv("MATRIX_HOMESERVER")
MATRIX_SHARED_SECRET = os.getenv("MATRIX_SHARED_SECRET")
WHATSAPP_BRIDGE_BOT = os.getenv("WHATSAPP_BRIDGE_BOT")
WHATSAPP_SEND_DELAY_SECONDS = int(os.getenv("WHATSAPP_SEND_DELAY_SECONDS", "60"))

# ✅ Google Calendar OAuth
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URL = os.getenv("GOOGLE_REDIRECT_URL", f"{SERVER_URL}/api/auth/google/callback")
