from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List, Literal


class Settings(BaseSettings):
    # "memory" keeps rooms in-process (single server / tests); "firestore" shares them
    store_backend: Literal["memory", "firestore"] = "memory"
    google_cloud_project: str = ""
    firestore_emulator_host: Optional[str] = None
    rooms_collection: str = "rooms"

    room_code_length: int = 4
    room_code_max_attempts: int = 10
    transaction_max_retries: int = 5

    # Defaults copied into each new room's GameSettings
    default_action_wait_time: int = 60
    default_voting_wait_time: int = 240
    min_players: int = 3

    # CORS origins: set ALLOWED_ORIGINS env var for production (comma-separated)
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
