"""Client configuration."""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class SocketSettings(BaseSettings):
    """Settings for the ctfboard leaderboard socket."""

    # Backend
    backend_url: str = Field(
        default="http://localhost:5000",
        validation_alias=AliasChoices("CTFBOARD_BACKEND_URL", "BACKEND_URL", "backend_url"),
    )
    socketio_path: str = "/socket.io"

    # Transport defaults
    transports: list[str] = ["websocket", "polling"]  # websocket first, polling for strict proxies
    reconnection_attempts: int = 0  # 0 retries forever
    reconnection_delay: float = 1.0  # seconds
    connect_timeout: float = 20.0  # seconds

    # Persisted client storage
    token_store_path: Path = Path.home() / ".ctfboard" / "storage.json"
    token_key: str = "token"

    class Config:
        env_prefix = "CTFBOARD_"
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


settings = SocketSettings()
