from enum import Enum
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

load_dotenv()

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "catalog.json"


class MergePolicy(str, Enum):
    """How a guest snapshot and an existing remote snapshot are reconciled at login."""
    REMOTE_WINS = "remote_wins"
    MOST_PROGRESS = "most_progress"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PROGRESS_SYNC_", env_file=".env", extra="ignore")

    # Remote record service
    database_url: str = "sqlite:///./progress_sync.db"
    remote_base_url: str = "http://localhost:8000"
    remote_timeout_seconds: float = 10.0

    # Device storage
    local_storage_path: Path = Path(".progress_sync/local_storage.json")

    # Session behaviour
    autosave_interval_seconds: float = 30.0
    deferred_auth: bool = True
    guest_accessible_modules: list[int] = [0]
    authenticated_min_unlocked: list[int] = [0, 1]
    merge_policy: MergePolicy = MergePolicy.MOST_PROGRESS

    catalog_path: Path = DEFAULT_CATALOG_PATH


@lru_cache
def get_settings() -> Settings:
    return Settings()


def _connect_args(url: str) -> dict:
    return {"check_same_thread": False} if url.startswith("sqlite") else {}


engine = create_engine(get_settings().database_url, connect_args=_connect_args(get_settings().database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def create_db():
    # Import models so their tables are registered on Base.metadata.
    import progress_sync.models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
