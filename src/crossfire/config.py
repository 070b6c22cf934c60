"""Runtime configuration for Crossfire.

Every value can be overridden through the environment (``CROSSFIRE_`` prefix)
or a local ``.env`` file, e.g.::

    CROSSFIRE_PORT=8080
    CROSSFIRE_VICTORY_POINTS=100
    CROSSFIRE_BOT_ACCURACY=0.5
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DATA_DIR = Path(__file__).resolve().parent / "data"


class Settings(BaseSettings):
    # Relay server bind (FastAPI / Uvicorn)
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # Game rules
    victory_points: int = 150
    turn_timer: int = 180
    trivia_timer: int = 60
    feedback_correct_duration: float = 4.0
    feedback_incorrect_duration: float = 4.0
    countdown_seconds: int = 3
    hint_letter_cost: int = 3
    trivia_hint_cost: int = 5

    # Solo opponent
    bot_name: str = "Socrates"
    bot_think_min: float = 3.0
    bot_think_max: float = 7.0
    bot_accuracy: float = 0.7
    bot_hint_probability: float = 0.2
    bot_letter_delay: float = 0.3
    bot_submit_pause: float = 0.8
    bot_hint_pause: float = 1.5
    bot_reveal_pause: float = 2.0

    # Rooms
    room_code_length: int = 4
    room_create_attempts: int = 3
    room_ttl_seconds: int = 60 * 60 * 24

    # Content and local session snapshot
    default_language: str = "en"
    data_dir: Path = PACKAGE_DATA_DIR
    session_file: Path = Path(".crossfire-session.json")

    model_config = SettingsConfigDict(
        env_prefix="CROSSFIRE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
