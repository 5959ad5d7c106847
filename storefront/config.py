import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)


@dataclass
class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:3000")
    CURRENCY: str = os.getenv("CURRENCY", "INR")
    FREE_SHIPPING_THRESHOLD: float = float(os.getenv("FREE_SHIPPING_THRESHOLD", "500"))
    SHIPPING_FEE: float = float(os.getenv("SHIPPING_FEE", "50"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    STORE_NAME: str = os.getenv("STORE_NAME", "Uniformat")
    JWT_SECRET: str = os.getenv("JWT_SECRET", "")


settings = Settings()
