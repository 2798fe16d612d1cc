"""Record validation package."""

from billbook.validation.validator import RecordValidator, ensure_valid

__all__ = ["RecordValidator", "ensure_valid"]
