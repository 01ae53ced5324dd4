"""Resumable, redacting shipper for JSON Lines session transcripts."""

__version__ = "0.1.0"
