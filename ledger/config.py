from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    PROJECT_NAME: str = "Dompet Finance Dashboard"
    VERSION: str = "0.1.0"

    # Demo data the store starts from when DATA_PATH does not exist yet.
    SEED_PATH: Path = BASE_DIR / "data" / "seed.json"
    # Where committed changes are written; None keeps everything in memory.
    DATA_PATH: Optional[Path] = None

    ALLOW_OVERDRAFT: bool = False
    LOW_BALANCE_THRESHOLD: float = 100_000
    PAYROLL_DAY: int = 28
    PAGE_SIZE: int = 10
    CURRENCY: str = "IDR"
    CURRENCY_SYMBOL: str = "Rp"

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()
