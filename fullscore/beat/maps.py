"""Manual alias maps for spaces and actions."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fullscore.beat.tokens import is_safe_payload
from fullscore.settings import Settings


class BeatMaps(BaseModel):
    """Aliases that replace automatic encoding.

    ``spaces`` maps raw space identifiers (paths) to aliases. ``actions`` maps
    selectors to aliases: ``#id``, ``.class``, an ``href`` value, or ``*<auto>``
    to rename an automatic descriptor.
    """

    model_config = ConfigDict(frozen=True)

    spaces: dict[str, str] = Field(default_factory=dict)
    actions: dict[str, str] = Field(default_factory=dict)

    @field_validator("spaces", "actions")
    @classmethod
    def validate_aliases(cls, v: dict[str, str]) -> dict[str, str]:
        for key, alias in v.items():
            if not is_safe_payload(alias):
                raise ValueError(f"alias {alias!r} for {key!r} is empty or contains reserved characters")
        return v

    @classmethod
    def from_settings(cls, settings: Settings) -> "BeatMaps":
        return cls(spaces=settings.space_map, actions=settings.action_map)
