"""Command-line claim scrubber.

Validates a claim JSON file against a reference data fixture and prints
the result.

Usage:
    python -m claimscrub.cli claim.json
    python -m claimscrub.cli claim.json --reference fixtures/reference_data.json
    python -m claimscrub.cli claim.json --history claims.json --as-of 2026-03-01
    python -m claimscrub.cli claim.json --summary
"""

import argparse
import json
import logging
import sys
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

from claimscrub.core.config import settings
from claimscrub.services.claim import InvalidClaimError
from claimscrub.services.claim_validator import ClaimValidationService
from claimscrub.services.reference_data import (
    InMemoryClaimHistoryRepository,
    InMemoryReferenceRepository,
)
from claimscrub.services.result_assembler import ValidationResult

# Present in a source checkout; installed wheels need --reference
DEFAULT_REFERENCE = Path(__file__).parent.parent / "fixtures" / "reference_data.json"


class Colors:
    """ANSI color codes for terminal output."""

    RED = "\033[91m"
    YELLOW = "\033[93m"
    GREEN = "\033[92m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"
    BOLD = "\033[1m"
    END = "\033[0m"


SEVERITY_COLORS = {
    "critical": Colors.RED,
    "high": Colors.RED,
    "medium": Colors.YELLOW,
    "low": Colors.GRAY,
}


def _read_json(path: Path) -> Any:
    with open(path) as f:
        return json.load(f)


def resolve_reference(explicit: Path | None) -> Path | None:
    """Pick the reference fixture: flag, then configured path, then the bundled sample."""
    if explicit is not None:
        return explicit
    if settings.reference_fixture_path:
        return Path(settings.reference_fixture_path)
    if DEFAULT_REFERENCE.exists():
        return DEFAULT_REFERENCE
    return None


def build_service(
    reference_path: Path,
    history_path: Path | None = None,
    as_of: date | None = None,
) -> ClaimValidationService:
    """Wire a service over in-memory repositories."""
    history = InMemoryClaimHistoryRepository.from_rows(
        _read_json(history_path) if history_path else []
    )
    clock = None
    if as_of is not None:
        fixed = datetime(as_of.year, as_of.month, as_of.day, tzinfo=UTC)
        clock = lambda: fixed  # noqa: E731
    return ClaimValidationService(
        reference_repo=InMemoryReferenceRepository.load(reference_path),
        history_repo=history,
        clock=clock,
    )


def print_summary(result: ValidationResult) -> None:
    """Print a colored, human-readable report."""
    level_color = SEVERITY_COLORS.get(result.risk_level.value, Colors.GREEN)
    print(f"{Colors.BOLD}{Colors.CYAN}{'=' * 70}{Colors.END}")
    print(
        f"  Denial risk: {level_color}{result.denial_risk_score} "
        f"({result.risk_level.value}){Colors.END}"
    )
    print(f"  Issues: {result.total_issues}  {result.issue_counts}")
    if result.checks_degraded:
        print(f"  {Colors.YELLOW}Degraded checks: {', '.join(result.checks_degraded)}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.CYAN}{'=' * 70}{Colors.END}")

    for issue in result.issues:
        color = SEVERITY_COLORS.get(issue.severity.value, Colors.END)
        print(f"  {color}[{issue.severity.value:8s}]{Colors.END} {issue.type}: {issue.message}")
        if issue.correction:
            print(f"  {Colors.GRAY}{' ' * 11}-> {issue.correction}{Colors.END}")

    if result.corrections:
        print()
        print(f"  {Colors.BOLD}Suggested corrections{Colors.END}")
        for correction in result.corrections:
            print(f"  {Colors.GREEN}+{Colors.END} {correction.target_code}: {correction.action} ({correction.reason})")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate a claim and score its denial risk")
    parser.add_argument("claim", type=Path, help="Claim JSON file")
    parser.add_argument(
        "--reference",
        type=Path,
        help="Reference data fixture (defaults to REFERENCE_FIXTURE_PATH or the sample data)",
    )
    parser.add_argument("--history", type=Path, help="Prior claims JSON (list of rows)")
    parser.add_argument(
        "--as-of", type=date.fromisoformat, help="Evaluation date (YYYY-MM-DD)"
    )
    parser.add_argument("--summary", action="store_true", help="Print a readable summary")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    reference = resolve_reference(args.reference)
    if reference is None:
        parser.error("no reference data found; pass --reference or set REFERENCE_FIXTURE_PATH")

    service = build_service(reference, args.history, args.as_of)
    try:
        result = service.validate_sync(_read_json(args.claim))
    except InvalidClaimError as e:
        print(f"Invalid claim: {e}", file=sys.stderr)
        return 2

    if args.summary:
        print_summary(result)
    else:
        print(json.dumps(result.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
