#!/usr/bin/env python3
"""
Command-line maintenance utility: re-embed stored posts and re-derive value profiles.
"""

import argparse
import sys
import json
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from value_match.core.config import get_embedding_provider, get_engine_config, validate_engine_config
from value_match.core.maintenance import MaintenanceReport, reembed_posts, refresh_all_profiles
from value_match.core.profile_service import create_profile_service


def format_report(report: MaintenanceReport) -> str:
    """Format a maintenance report for display."""
    lines = [f"Operation: {report.operation}"]
    if report.completed_at and report.started_at:
        duration = report.completed_at - report.started_at
        lines.append(f"Duration: {duration.total_seconds():.2f} seconds")

    if report.failed:
        lines.append(f"Status: PARTIAL ({report.failed} failed)")
    else:
        lines.append("Status: SUCCESS")

    lines.append(f"Processed: {report.processed}")
    for error in report.errors[:20]:
        lines.append(f"  - {error}")
    if len(report.errors) > 20:
        lines.append(f"  ... {len(report.errors) - 20} more")

    return "\n".join(lines)


def main():
    parser = argparse.ArgumentParser(description="Value profile maintenance")
    parser.add_argument("command", choices=["reembed", "refresh", "all"],
                        help="reembed: re-embed every post; refresh: re-derive every profile; all: both")
    parser.add_argument("--db-path", default=None, help="SQLite database path (defaults to DB_PATH)")
    parser.add_argument("--json", action="store_true", help="Print reports as JSON")
    args = parser.parse_args()

    issues = validate_engine_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        sys.exit(1)

    config = get_engine_config()
    service = create_profile_service(db_path=args.db_path, config=config)

    reports = []
    if args.command in ("reembed", "all"):
        reports.append(reembed_posts(service.store, get_embedding_provider(), config.expected_dimension))
    if args.command in ("refresh", "all"):
        reports.append(refresh_all_profiles(service))

    for report in reports:
        if args.json:
            print(json.dumps(report.to_dict(), indent=2))
        else:
            print(format_report(report))

    sys.exit(1 if any(r.failed for r in reports) else 0)


if __name__ == "__main__":
    main()
