"""Claim document validation."""

from evidence_gate.claims.validator import (
    FORBIDDEN_FIELDS,
    ClaimDocumentError,
    ClaimValidationResult,
    find_forbidden_fields,
    load_claim,
    validate_claim,
)

__all__ = [
    "FORBIDDEN_FIELDS",
    "ClaimDocumentError",
    "ClaimValidationResult",
    "find_forbidden_fields",
    "load_claim",
    "validate_claim",
]
