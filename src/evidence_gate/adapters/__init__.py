"""Capability-to-adapter resolution."""

from evidence_gate.adapters.registry import CapabilityRegistry, NoAdapterError, resolve_capability

__all__ = ["CapabilityRegistry", "NoAdapterError", "resolve_capability"]
