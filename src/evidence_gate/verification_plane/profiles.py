"""Profile file loading (YAML or JSON) into immutable :class:`Profile` objects."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path

import yaml

from evidence_gate.domain.models import Profile


class ProfileLoadError(ValueError):
    """Raised when a profiles file cannot be read or does not describe profiles."""


def load_profiles(path: str | os.PathLike[str]) -> dict[str, Profile]:
    """
    Load a ``name -> Profile`` mapping.

    The document root is either the mapping itself or an object whose only key is
    ``profiles``. ``.json`` files are parsed as JSON; anything else as YAML.
    """

    profiles_path = Path(path)
    try:
        text = profiles_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ProfileLoadError(f"unable to read profiles file {profiles_path}: {exc}") from exc

    try:
        if profiles_path.suffix.lower() == ".json":
            payload = json.loads(text)
        else:
            payload = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ProfileLoadError(f"invalid profiles file {profiles_path}: {exc}") from exc

    return parse_profiles(payload, source=str(profiles_path))


def parse_profiles(payload: object, *, source: str = "<profiles>") -> dict[str, Profile]:
    if payload is None:
        return {}
    if (
        isinstance(payload, Mapping)
        and list(payload) == ["profiles"]
        and isinstance(payload["profiles"], Mapping)
    ):
        payload = payload["profiles"]
    if not isinstance(payload, Mapping):
        raise ProfileLoadError(f"{source}: profiles root must be a mapping")

    profiles: dict[str, Profile] = {}
    for name in sorted(payload, key=str):
        body = payload[name]
        if not isinstance(name, str) or not name.strip():
            raise ProfileLoadError(f"{source}: profile names must be non-empty strings")
        try:
            profiles[name] = Profile.from_mapping(name, body if body is not None else {})
        except ValueError as exc:
            raise ProfileLoadError(f"{source}: {exc}") from exc
    return profiles


__all__ = ["ProfileLoadError", "load_profiles", "parse_profiles"]
