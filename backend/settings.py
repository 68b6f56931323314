from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Nearby Chat API"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3000
    # CORS: "*" for dev; in production set to comma-separated origins, e.g. "https://chat.example.com"
    cors_origins: str = "*"

    # Durable log of users/messages for /api/messages. When disabled (or the DB can't be opened) the relay runs in memory only.
    persistence_enabled: bool = True
    chat_db_path: str = "data/chat.db"  # Path relative to backend root, or absolute

    proximity_radius_m: float = 30.0  # Users within this distance see each other's presence and messages
    message_window_seconds: int = 3600  # /api/messages history window
    recent_messages_limit: int = 50


def get_settings() -> Settings:
    return Settings()
