"""Core configuration settings for trace recording and session sync.

@public

Settings are loaded from environment variables (prefix ``FULLSCORE_``) with
.env file support via pydantic-settings.

Environment variables:
    FULLSCORE_TICK_MS: Length of one time tick in milliseconds
    FULLSCORE_MAX_SLOTS: Size of the shared slot pool
    FULLSCORE_CAPACITY: Byte ceiling of one serialized slot
    FULLSCORE_ORIGIN: Base URL used to resolve relative endpoints
    FULLSCORE_ECHO_ENDPOINTS: JSON list of delivery endpoints
    FULLSCORE_STORE_PATH: Directory of the filesystem slot store

Example:
    >>> from fullscore.settings import settings
    >>> print(settings.max_slots)
    7

Note:
    Settings are loaded once at module import and frozen. Build a new
    ``Settings(...)`` instance to run controllers with different values.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Protocol constants and collaborator endpoints.

    @public

    Attributes:
        tick_ms: Milliseconds per time tick, used for trace time tokens and
                 epoch timestamps.
        tap: Refresh cycle; a refresh ping is requested every ``tap`` clicks.
        key_length: Length of the random base-36 epoch key.
        age_seconds: Retention period written with every slot.
        max_slots: Pool size. Exceeding it rolls the journey into a new epoch.
        capacity: Maximum serialized slot length before rotation.
        delete_threshold: Slots with fewer clicks are deleted instead of
                          archived. ``0`` archives everything.
        slot_prefix: Key prefix of slot names (``rhythm_1`` ...).
        epoch_name: Key of the shared epoch record.
        origin: Base URL that relative endpoints are resolved against.
        hit_path: Path refresh pings are sent to.
        echo_endpoints: Delivery endpoints; relative paths use ``origin``.
        referrer_map: Referrer domain to origin class (3-255).
        space_map: Manual aliases for space identifiers.
        action_map: Manual aliases for action selectors.
        tab_tracking: Record handoffs between contexts in the epoch chain.
        scroll_tracking: Record scroll positions as position tokens.
        power_mode: Archive and deliver immediately on every suspend.
        beacon_limit: Largest body handed to the background beacon; larger
                      bodies are posted directly.
        request_timeout: Seconds before an HTTP delivery is abandoned.
        store_path: Directory for the filesystem slot store. Empty selects
                    the in-memory store.
    """

    model_config = SettingsConfigDict(
        env_prefix="FULLSCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Trace timing
    tick_ms: int = Field(default=100, ge=1)

    # Session protocol
    tap: int = Field(default=3, ge=1)
    key_length: int = Field(default=8, ge=1)
    age_seconds: int = Field(default=259200, ge=1)
    max_slots: int = Field(default=7, ge=1)
    capacity: int = Field(default=3500, ge=64)
    delete_threshold: int = Field(default=1, ge=0)
    slot_prefix: str = "rhythm_"
    epoch_name: str = "score"

    # Transport
    origin: str = "http://localhost"
    hit_path: str = "/rhythm"
    echo_endpoints: list[str] = Field(default_factory=lambda: ["/rhythm/echo"])
    beacon_limit: int = Field(default=65536, ge=0)
    request_timeout: float = 10.0

    # Classification and aliases
    referrer_map: dict[str, int] = Field(
        default_factory=lambda: {
            "google.com": 3,
            "youtube.com": 4,
            "cloudflare.com": 5,
            "claude.ai": 6,
            "chatgpt.com": 7,
            "meta.com": 8,
        }
    )
    space_map: dict[str, str] = Field(default_factory=lambda: {"/": "home"})
    action_map: dict[str, str] = Field(default_factory=dict)

    # Add-ons
    tab_tracking: bool = True
    scroll_tracking: bool = False
    power_mode: bool = False

    # Storage
    store_path: str = ""


settings = Settings()
"""Global settings instance.

@public

Example:
    >>> from fullscore.settings import settings
    >>> print(f"Pool of {settings.max_slots} slots")
"""
