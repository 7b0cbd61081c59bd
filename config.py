# config.py
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: str
    sql_echo: bool
    jwt_secret: str
    jwt_algorithm: str
    access_token_ttl_minutes: int
    log_level: str
    log_dir: Optional[Path]
    complete_tx_attempts: int
    lock_timeout_ms: int


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """
    .env / 環境変数から設定を読み込む
    必須の値が無ければ起動時に落とす
    """
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set in environment variables")

    jwt_secret = os.getenv("JWT_SECRET", "").strip()
    if not jwt_secret:
        raise RuntimeError("JWT_SECRET is not set in environment variables")

    log_dir_raw = os.getenv("LOG_DIR", "").strip()

    return Settings(
        database_url=database_url,
        sql_echo=_env_bool("SQL_ECHO"),
        jwt_secret=jwt_secret,
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256").strip(),
        access_token_ttl_minutes=int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", "1440")),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        log_dir=Path(log_dir_raw) if log_dir_raw else None,
        # 完了処理のトランザクションは最大5回までリトライ
        complete_tx_attempts=int(os.getenv("COMPLETE_TX_ATTEMPTS", "5")),
        lock_timeout_ms=int(os.getenv("LOCK_TIMEOUT_MS", "5000")),
    )


settings = load_settings()
