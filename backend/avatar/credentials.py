"""
Avatar → vendor API credential lookup.

The table is configuration data, not code: a JSON list of

    {"avatar_id": "...", "name": "...", "api_key_env": "HEYGEN_API_KEY_WILL"}

Each entry names the environment variable holding the vendor key for that
avatar. Lookup is an exact match on avatar_id.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from errors import ConfigurationError


@dataclass(frozen=True)
class AvatarCredential:
    """One row of the avatar → credential table."""
    avatar_id: str
    name: str
    api_key_env: str


def parse_credentials(raw: str) -> tuple[AvatarCredential, ...]:
    """
    Parse the JSON credential table.

    Raises:
        ConfigurationError if the document is not a list of complete entries.
    """
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Avatar credential table is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise ConfigurationError("Avatar credential table must be a JSON list")

    rows: list[AvatarCredential] = []
    for entry in data:
        try:
            rows.append(
                AvatarCredential(
                    avatar_id=str(entry["avatar_id"]),
                    name=str(entry.get("name", entry["avatar_id"])),
                    api_key_env=str(entry["api_key_env"]),
                )
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ConfigurationError(f"Invalid avatar credential entry: {entry!r}") from e

    return tuple(rows)


def load_credentials(
    *,
    inline_json: str | None,
    file_path: str | None,
) -> tuple[AvatarCredential, ...]:
    """Load the table from a file path (preferred) or an inline JSON string."""
    if file_path:
        return parse_credentials(Path(file_path).read_text(encoding="utf-8"))
    if inline_json:
        return parse_credentials(inline_json)
    return ()


class CredentialTable:
    """Resolves avatar ids to vendor API keys."""

    def __init__(
        self,
        rows: tuple[AvatarCredential, ...],
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._rows = rows
        self._environ = environ if environ is not None else os.environ

    def find(self, avatar_id: str) -> AvatarCredential | None:
        for row in self._rows:
            if row.avatar_id == avatar_id:
                return row
        return None

    def resolve_api_key(self, avatar_id: str) -> tuple[AvatarCredential, str]:
        """
        Return (row, api_key) for the avatar.

        Raises:
            ConfigurationError if the avatar is not mapped or its env var is unset.
        """
        row = self.find(avatar_id)
        if row is None or not row.api_key_env:
            raise ConfigurationError(f"No API key env found for avatar: {avatar_id}")

        api_key = self._environ.get(row.api_key_env)
        if not api_key:
            raise ConfigurationError(f"Environment variable {row.api_key_env} not found")

        return row, api_key
