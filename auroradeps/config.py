"""Engine configuration — env-driven.

Centralized config using pydantic-settings. Reads from a .env file and
AURORADEPS_* environment variables. Only the CLI reads configuration; the
core receives target architecture, store root and collaborators as
explicit arguments.
"""

from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseSettings):
    """Engine configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export AURORADEPS_REMOTE_URL=https://conan.example.org
        export AURORADEPS_ARCH=armv8
        export AURORADEPS_FAMILIES='{"lts": ["1.16.0", "1.18.1"]}'

    ``RPM_ARCH`` is honoured as well, so running inside an rpm build picks
    the build architecture without extra setup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="AURORADEPS_",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    log_level: str = "WARNING"

    # Remote endpoints
    portal_url: str = "https://developer.auroraos.ru"
    remote_url: str = ""  # Conan v2 remote; required for clear mode
    package_user: str = "aurora"
    user_agent: str = "auroradeps/0.1 (+https://developer.auroraos.ru)"

    # HTTP behaviour
    request_timeout: float = 30.0
    retry_max: int = 3
    retry_backoff: float = 0.5

    # Clear mode
    target_arch: str | None = Field(
        default=None,
        validation_alias=AliasChoices("AURORADEPS_ARCH", "RPM_ARCH"),
    )
    strict_arch: bool | None = None  # None: strict only with an explicit arch
    max_workers: int = 4
    fail_on_conflict: bool = False
    families: dict[str, list[str]] = Field(default_factory=dict)
    store_dir: str = "thirdparty/aurora"

    # Managed mode
    managed_command: str = "conan"
    managed_timeout: float = 600.0
