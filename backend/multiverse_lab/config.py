# ENV vars like model API keys and adapter limits
import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
    POE_API_KEY = os.getenv("POE_API_KEY", "")
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")

    DEFAULT_MODEL_KEY = os.getenv("DEFAULT_MODEL_KEY", "claude-sonnet")

    # Agent adapter: per-attempt timeout, total attempts, backoff base (seconds)
    AGENT_TIMEOUT_SECONDS = float(os.getenv("AGENT_TIMEOUT_SECONDS", "30"))
    AGENT_MAX_ATTEMPTS = int(os.getenv("AGENT_MAX_ATTEMPTS", "3"))
    AGENT_RETRY_BACKOFF = float(os.getenv("AGENT_RETRY_BACKOFF", "0.5"))

    DEFAULT_UNIVERSE_COUNT = int(os.getenv("DEFAULT_UNIVERSE_COUNT", "3"))

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"
