from pydantic_settings import BaseSettings
from pydantic import Field, validator
from dotenv import load_dotenv
from typing import List
import logging
import sys

load_dotenv()
logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    # Required environment variables
    MONGO_URI: str = Field(..., description="MongoDB connection URI (progress mirror, audit log)")
    REDIS_URL: str = Field(..., description="Redis connection URL")

    # Upstream platform API
    BACKEND_URL: str = Field(default="http://localhost:5050", description="Origin of the platform backend")
    BACKEND_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0, le=120)
    BACKEND_SERVICE_TOKEN: str = Field(default="", description="Bearer token used by scheduled refresh jobs")

    # Comma separated, compared lower-cased
    ADMIN_EMAILS: str = Field(default="")

    # Certificate poll schedule (seconds)
    CERTIFICATE_INITIAL_DELAY: float = Field(default=2.0, ge=0)
    CERTIFICATE_RETRY_DELAYS: str = Field(default="3,6")
    CERTIFICATE_MAX_ATTEMPTS: int = Field(default=3, ge=1, le=10)

    SESSION_TTL_SECONDS: int = Field(default=60 * 60 * 24, ge=60)
    NOTIFICATION_TTL_SECONDS: int = Field(default=5, ge=1, le=3600)

    # Refresh jobs
    ANALYTICS_REFRESH_MINUTES: int = Field(default=5, ge=1, le=1440)
    ORDERS_REFRESH_SECONDS: int = Field(default=30, ge=5, le=3600)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    @validator('MONGO_URI')
    def validate_mongo_uri(cls, v):
        if not v.startswith(('mongodb://', 'mongodb+srv://')):
            raise ValueError('MONGO_URI must be a valid MongoDB connection string')
        return v

    @validator('REDIS_URL')
    def validate_redis_url(cls, v):
        if not v.startswith(('redis://', 'rediss://')):
            raise ValueError('REDIS_URL must be a valid Redis connection string')
        return v

    @validator('BACKEND_URL')
    def validate_backend_url(cls, v):
        if not v.startswith(('http://', 'https://')):
            raise ValueError('BACKEND_URL must be an http(s) origin')
        return v.rstrip('/')

    @validator('CERTIFICATE_RETRY_DELAYS')
    def validate_retry_delays(cls, v):
        try:
            [float(x) for x in v.split(',') if x.strip()]
        except ValueError:
            raise ValueError('CERTIFICATE_RETRY_DELAYS must be a comma separated list of seconds')
        return v

    @property
    def admin_emails(self) -> List[str]:
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(',') if e.strip()]

    @property
    def certificate_retry_delays(self) -> List[float]:
        return [float(x) for x in self.CERTIFICATE_RETRY_DELAYS.split(',') if x.strip()]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

try:
    settings = Settings()
    logger.info("Configuration loaded successfully")
except Exception as e:
    logger.critical(f"Failed to load configuration: {str(e)}")
    sys.exit(1)
