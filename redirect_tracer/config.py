from pydantic_settings import BaseSettings
from pathlib import Path
from typing import List, Optional
from dotenv import load_dotenv

# Load .env file from the project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Also try loading from current directory
load_dotenv()

CHROME_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    max_redirects: int = 20
    request_timeout: float = 15.0
    # Wall-clock budget for a whole trace, in seconds. None disables it.
    trace_timeout: Optional[float] = None
    user_agent: str = CHROME_USER_AGENT
    fetch_strategy: str = "http"  # "http" or "browser"
    detect_html_redirects: bool = True
    max_body_bytes: int = 1_000_000
    verify_tls: bool = True
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


settings = Settings()
