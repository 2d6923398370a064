"""Deterministic capability registry built from ``adapters/*/manifest.json``."""

from __future__ import annotations

import json
import os
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import TypeAlias

import structlog

from evidence_gate.constants import ADAPTER_MANIFEST_FILE, DEFAULT_ADAPTERS_DIR
from evidence_gate.domain.models import AdapterManifest

PathLike: TypeAlias = str | os.PathLike[str]

logger = structlog.get_logger(__name__)


class NoAdapterError(LookupError):
    """Raised when no scanned manifest declares the requested capability."""

    def __init__(self, capability: str) -> None:
        self.capability = capability
        super().__init__(f"no adapter for capability: {capability}")


class CapabilityRegistry:
    """
    In-memory ``capability -> adapter`` map, built once and queried many times.

    Manifests are scanned in lexicographic adapter-directory order. When several
    adapters declare the same capability the last scanned wins, unless ``priority``
    names one of the candidates: then the candidate listed earliest in ``priority``
    wins regardless of scan order.
    """

    __slots__ = ("_adapters_dir", "_manifests", "_priority", "_providers")

    def __init__(
        self,
        *,
        adapters_dir: Path,
        manifests: Sequence[AdapterManifest],
        priority: Sequence[str] = (),
    ) -> None:
        self._adapters_dir = adapters_dir
        self._manifests = tuple(manifests)
        self._priority = tuple(priority)
        rank = {name: position for position, name in enumerate(self._priority)}

        providers: dict[str, AdapterManifest] = {}
        for manifest in self._manifests:
            for capability in manifest.capabilities:
                current = providers.get(capability)
                if current is not None and not _outranks(manifest, current, rank):
                    continue
                if current is not None:
                    logger.debug(
                        "capability_shadowed",
                        capability=capability,
                        winner=manifest.name,
                        shadowed=current.name,
                    )
                providers[capability] = manifest
        self._providers = providers

    @property
    def adapters_dir(self) -> Path:
        return self._adapters_dir

    @property
    def manifests(self) -> tuple[AdapterManifest, ...]:
        """Return valid manifests in scan order."""

        return self._manifests

    @property
    def capabilities(self) -> tuple[str, ...]:
        return tuple(sorted(self._providers))

    @classmethod
    def scan(
        cls,
        adapters_dir: PathLike = DEFAULT_ADAPTERS_DIR,
        *,
        priority: Iterable[str] = (),
    ) -> CapabilityRegistry:
        """Scan ``adapters_dir/*/manifest.json`` once and build the registry."""

        root = Path(adapters_dir).expanduser()
        if not root.exists():
            raise FileNotFoundError(f"adapters directory does not exist: {root}")
        if not root.is_dir():
            raise NotADirectoryError(f"adapters path is not a directory: {root}")

        manifests: list[AdapterManifest] = []
        for adapter_dir in sorted(root.iterdir(), key=lambda path: path.name):
            manifest_path = adapter_dir / ADAPTER_MANIFEST_FILE
            if not adapter_dir.is_dir() or not manifest_path.is_file():
                continue
            manifest = _load_manifest(adapter_dir.name, manifest_path)
            if manifest is not None:
                manifests.append(manifest)

        return cls(adapters_dir=root, manifests=manifests, priority=tuple(priority))

    def provider(self, capability: str) -> AdapterManifest:
        """Return the manifest selected for ``capability``."""

        selected = self._providers.get(capability)
        if selected is None:
            raise NoAdapterError(capability)
        return selected

    def resolve(self, capability: str) -> Path:
        """Return the absolute entrypoint path of the adapter serving ``capability``."""

        return self.provider(capability).entry_path

    def to_dict(self) -> dict[str, str]:
        return {capability: str(self.resolve(capability)) for capability in self.capabilities}


def resolve_capability(
    capability: str,
    adapters_dir: PathLike = DEFAULT_ADAPTERS_DIR,
    *,
    priority: Iterable[str] = (),
) -> Path:
    """One-shot scan and resolve."""

    return CapabilityRegistry.scan(adapters_dir, priority=priority).resolve(capability)


def _outranks(
    candidate: AdapterManifest,
    current: AdapterManifest,
    rank: Mapping[str, int],
) -> bool:
    candidate_rank = rank.get(candidate.name)
    current_rank = rank.get(current.name)
    if candidate_rank is None and current_rank is None:
        return True
    if candidate_rank is None:
        return False
    if current_rank is None:
        return True
    return candidate_rank < current_rank


def _load_manifest(name: str, manifest_path: Path) -> AdapterManifest | None:
    try:
        payload = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("adapter_manifest_unreadable", adapter=name, error=str(exc))
        return None
    if not isinstance(payload, Mapping):
        logger.warning("adapter_manifest_invalid", adapter=name, error="root must be an object")
        return None
    try:
        return AdapterManifest.from_mapping(name, manifest_path, payload)
    except ValueError as exc:
        logger.warning("adapter_manifest_invalid", adapter=name, error=str(exc))
        return None


__all__ = [
    "CapabilityRegistry",
    "NoAdapterError",
    "resolve_capability",
]
