import os
import logging
from pydantic import BaseModel, Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

class RemoteSettings(BaseModel):
    base_url: str = Field(default=os.getenv("LEAVE_API_URL", "https://staff-hive-backend.onrender.com/api"))
    token: Optional[str] = Field(default=os.getenv("LEAVE_API_TOKEN"))
    timeout_seconds: float = float(os.getenv("LEAVE_API_TIMEOUT", "30"))
    retry_attempts: int = int(os.getenv("LEAVE_API_RETRIES", "3"))
    retry_wait_max: float = 10.0

class Config(BaseModel):
    app_name: str = "Staff Hive Leave"
    environment: str = os.getenv("APP_ENV", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"

    # Remote collaborator
    remote: RemoteSettings = RemoteSettings()

    # Local durable cache
    cache_url: str = os.getenv("LEAVE_CACHE_URL", "sqlite:///./leave_cache.db")
    cache_key: str = os.getenv("LEAVE_CACHE_KEY", "leaveRequests")

    # Name stamped into approvedBy / rejectedBy when the caller gives none
    default_actor: str = os.getenv("LEAVE_DEFAULT_ACTOR", "Admin")

settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment != "development" and not settings.remote.token:
    _logger.warning("LEAVE_API_TOKEN is not set; remote calls will be unauthenticated.")
