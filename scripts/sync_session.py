#!/usr/bin/env python3
"""
Sync one session transcript to the backend.

This script performs a single sync of a session:
- Creates or resumes the backend session and pulls its cursors
- Uploads new lines of the transcript and every agent file it references
- Prints the sync report as JSON on stdout

Designed to be run from a session hook or on a schedule (e.g. via cron).

Usage:
    python scripts/sync_session.py --transcript PATH --session-id ID [--config PATH] [--cwd DIR]
"""

import argparse
import json
import sys

import structlog

from transcript_sync.client.errors import TransportError
from transcript_sync.redaction.redactor import RedactionConfigError
from transcript_sync.sync.models import EngineConfig
from transcript_sync.sync.sync_engine import SyncEngine
from transcript_sync.utils.config_loader import ConfigLoader, ConfigurationError
from transcript_sync.utils.logging_config import configure_logging

log = structlog.stdlib.get_logger()


def perform_sync(
    transcript_path: str,
    session_id: str,
    config_path: str | None = None,
    cwd: str = "",
) -> dict:
    """
    Sync one session.

    Args:
        transcript_path: Path of the root transcript
        session_id: External session id
        config_path: Optional path to configuration file
        cwd: Working directory of the session, used for git detection

    Returns:
        Dictionary with sync statistics
    """
    try:
        config_loader = ConfigLoader()
        config = config_loader.load_config(config_path)
    except ConfigurationError as e:
        return {"success": False, "error": str(e)}

    configure_logging(
        log_level=config.logging.log_level,
        json_logs=config.logging.json_logs,
        log_file=config.logging.log_file,
    )
    config_loader.validate_config(config)

    if not config.backend.is_configured:
        return {"success": False, "error": "backend_url and api_key must be configured"}

    try:
        engine = SyncEngine.from_config(
            config,
            EngineConfig(external_id=session_id, transcript_path=transcript_path, cwd=cwd),
        )
    except RedactionConfigError as e:
        log.error("invalid_redaction_config", error=str(e))
        return {"success": False, "error": str(e)}

    try:
        engine.init()
    except TransportError as e:
        log.error("sync_init_failed", error=str(e))
        return {"success": False, "error": str(e)}

    report = engine.sync_all()

    stats = report.model_dump(mode="json")
    stats["success"] = report.success
    stats["files"] = engine.get_sync_stats()
    if report.first_error is not None:
        stats["error"] = str(report.first_error)

    return stats


def main():
    """Main entry point for the sync script."""
    parser = argparse.ArgumentParser(description="Sync a session transcript to the backend")
    parser.add_argument("--transcript", required=True, help="Path to the session transcript")
    parser.add_argument("--session-id", required=True, help="External session id")
    parser.add_argument("--config", default=None, help="Path to configuration file")
    parser.add_argument("--cwd", default="", help="Working directory of the session")

    args = parser.parse_args()

    stats = perform_sync(
        transcript_path=args.transcript,
        session_id=args.session_id,
        config_path=args.config,
        cwd=args.cwd,
    )

    print(json.dumps(stats, indent=2))

    sys.exit(0 if stats.get("success") else 1)


if __name__ == "__main__":
    main()
