import os
import logging
from functools import lru_cache
from typing import Optional
from pydantic import BaseModel
from dotenv import load_dotenv

DEFAULT_AI_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_AI_MODEL = "nvidia/nemotron-3-nano-30b-a3b:free"
DEFAULT_PUBCHEM_URL = "https://pubchem.ncbi.nlm.nih.gov/rest/pug"

class Settings(BaseModel):
    ai_api_key: Optional[str] = None
    ai_base_url: str = DEFAULT_AI_BASE_URL
    ai_model: str = DEFAULT_AI_MODEL
    pubchem_url: str = DEFAULT_PUBCHEM_URL
    http_timeout: float = 10.0

    # Backoff for the AI provider (seconds)
    resolve_retries: int = 1
    analyze_retries: int = 2
    resolve_base_delay: float = 1.0
    analyze_base_delay: float = 3.0
    retry_growth: float = 2.5
    retry_jitter: float = 1.0

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Reads settings from the process environment (and a .env file if present).
        Unset variables keep their defaults.
        """
        load_dotenv()
        env = {
            "ai_api_key": os.getenv("OPENROUTER_API_KEY"),
            "ai_base_url": os.getenv("STEREOCHEM_AI_BASE_URL"),
            "ai_model": os.getenv("STEREOCHEM_AI_MODEL"),
            "pubchem_url": os.getenv("STEREOCHEM_PUBCHEM_URL"),
            "http_timeout": os.getenv("STEREOCHEM_HTTP_TIMEOUT"),
            "resolve_retries": os.getenv("STEREOCHEM_RESOLVE_RETRIES"),
            "analyze_retries": os.getenv("STEREOCHEM_ANALYZE_RETRIES"),
            "analyze_base_delay": os.getenv("STEREOCHEM_RETRY_BASE_DELAY"),
            "retry_growth": os.getenv("STEREOCHEM_RETRY_GROWTH"),
            "retry_jitter": os.getenv("STEREOCHEM_RETRY_JITTER"),
            "log_level": os.getenv("STEREOCHEM_LOG_LEVEL"),
        }
        return cls(**{k: v for k, v in env.items() if v is not None})

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()

def configure_logging(level: Optional[str] = None):
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
