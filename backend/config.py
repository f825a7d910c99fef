"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No session logic
- No protocol constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from avatar.credentials import AvatarCredential, load_credentials
from constants import (
    AUTH_BYPASS_TOKEN_DEFAULT,
    STT_DEFAULT_LANGUAGE,
    VENDOR_API_URL_DEFAULT,
    VENDOR_TIMEOUT_S,
)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the app factory, which builds the services from it.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ("*",)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool = True

    # ------------------------------------------------------------------
    # Avatar vendor
    # ------------------------------------------------------------------

    avatar_api_url: str = VENDOR_API_URL_DEFAULT
    avatar_api_key: str | None = None
    default_avatar_id: str | None = None
    default_voice_id: str | None = None
    avatar_transport: str = "direct_media"
    auth_bypass_token: str = AUTH_BYPASS_TOKEN_DEFAULT
    vendor_timeout_s: float = VENDOR_TIMEOUT_S
    avatar_credentials: tuple[AvatarCredential, ...] = field(default_factory=tuple)

    # ------------------------------------------------------------------
    # STT
    # ------------------------------------------------------------------

    deepgram_api_key: str | None = None
    stt_api_key: str | None = None
    stt_model: str = "nova-2"
    stt_language: str = STT_DEFAULT_LANGUAGE

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ConfigurationError if the avatar credential table is malformed.
        """
        origins = os.environ.get("CORS_ORIGINS", "*")

        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",

            avatar_api_url=os.environ.get("HEYGEN_API_URL", VENDOR_API_URL_DEFAULT),
            avatar_api_key=os.environ.get("HEYGEN_API_KEY"),
            default_avatar_id=os.environ.get("AVATAR_ID"),
            default_voice_id=os.environ.get("VOICE_ID"),
            avatar_transport=os.environ.get("AVATAR_TRANSPORT", "direct_media"),
            auth_bypass_token=os.environ.get("AUTH_BYPASS_TOKEN", AUTH_BYPASS_TOKEN_DEFAULT),
            vendor_timeout_s=float(os.environ.get("VENDOR_TIMEOUT_S", VENDOR_TIMEOUT_S)),
            avatar_credentials=load_credentials(
                inline_json=os.environ.get("AVATAR_CREDENTIALS"),
                file_path=os.environ.get("AVATAR_CREDENTIALS_FILE"),
            ),

            deepgram_api_key=os.environ.get("DEEPGRAM_API_KEY"),
            stt_api_key=os.environ.get("API_KEY"),
            stt_model=os.environ.get("STT_MODEL", "nova-2"),
            stt_language=os.environ.get("STT_LANGUAGE", STT_DEFAULT_LANGUAGE),
        )
