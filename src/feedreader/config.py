"""Configuration models and helpers for the Feed Reader service."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal, Mapping

from pydantic import BaseModel, Field, ValidationError

__all__ = [
    "AppConfig",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_USER_AGENT",
    "ENV_PREFIX",
]

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "data" / "config.json"
DEFAULT_USER_AGENT = "FeedReader/1.0 (+https://github.com/feedreader/feedreader)"

#: Prefix of environment variables that override values from the config file.
ENV_PREFIX = "FEEDREADER_"


class AppConfig(BaseModel):
    """Runtime settings for storage, fetching, and flag handling."""

    storage: Literal["file", "memory"] = Field(
        default="file",
        description="Persistence backend: JSON files under blob_root, or process memory",
    )
    blob_root: str | None = Field(
        default=None,
        description="Directory holding the stored collections. Defaults to the package blobstore.",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent header sent with every feed request",
    )
    request_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Seconds to wait for a feed server before giving up",
    )
    write_attempts: int = Field(
        default=3,
        ge=1,
        description=(
            "How many times a collection update is re-applied after losing a "
            "version race to a concurrent writer"
        ),
    )
    validate_flag_ids: bool = Field(
        default=False,
        description=(
            "Reject star/read toggles for ids that are not stored articles. "
            "When disabled any id is accepted."
        ),
    )

    @classmethod
    def from_file(cls, path: Path | str | None = None) -> "AppConfig":
        """Load configuration data from a JSON file."""

        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise FileNotFoundError(f"Configuration file not found: {config_path}") from exc
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in configuration file: {config_path}") from exc

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Configuration file is invalid: {config_path}\n{exc}") from exc

    @classmethod
    def load(
        cls, path: Path | str | None = None, environ: Mapping[str, str] | None = None
    ) -> "AppConfig":
        """Load the config file when present and apply environment overrides.

        A missing file at the default location is not an error; an explicitly
        requested file must exist.
        """

        if path is not None or DEFAULT_CONFIG_PATH.exists():
            config = cls.from_file(path)
        else:
            config = cls()
        return config.with_env(os.environ if environ is None else environ)

    def with_env(self, environ: Mapping[str, str]) -> "AppConfig":
        """Return a copy with ``FEEDREADER_*`` variables applied."""

        overrides = {}
        for name in type(self).model_fields:
            value = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if value is not None and value.strip():
                overrides[name] = value.strip()
        if not overrides:
            return self

        data = self.model_dump()
        data.update(overrides)
        try:
            return type(self).model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Invalid {ENV_PREFIX}* environment override\n{exc}") from exc

    def dump(self, path: Path | str | None = None) -> None:
        """Persist the configuration back to disk as JSON."""

        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
