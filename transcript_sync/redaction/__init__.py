"""Secret redaction for transcript content."""

from transcript_sync.redaction.patterns import get_default_patterns
from transcript_sync.redaction.redactor import CompiledPattern, RedactionConfigError, Redactor

__all__ = [
    "CompiledPattern",
    "RedactionConfigError",
    "Redactor",
    "get_default_patterns",
]
