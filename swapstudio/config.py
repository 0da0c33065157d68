import os
from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

class Settings(BaseModel):
    DATA_DIR: str = os.getenv("DATA_DIR", "./data")
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:8000")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    LIGHTX_API_KEY: str = os.getenv("LIGHTX_API_KEY", "")
    LIGHTX_BASE_URL: str = os.getenv("LIGHTX_BASE_URL", "https://api.lightxeditor.com/external/api")

    # per-call ceiling and polling budget for the face-swap service
    FACESWAP_TIMEOUT_SECONDS: float = float(os.getenv("FACESWAP_TIMEOUT_SECONDS", "30"))
    FACESWAP_MAX_RETRIES: int = int(os.getenv("FACESWAP_MAX_RETRIES", "5"))
    FACESWAP_POLL_INTERVAL_SECONDS: float = float(os.getenv("FACESWAP_POLL_INTERVAL_SECONDS", "3.0"))
    FACESWAP_STRICT_SIGNATURES: bool = os.getenv("FACESWAP_STRICT_SIGNATURES", "false").lower() in ("1", "true", "yes")

    # form uploads, checked before anything reaches the client
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(2 * 1024 * 1024)))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
