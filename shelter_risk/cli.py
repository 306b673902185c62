"""
Shelter Risk Engine - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the urgency scoring engine.

- Validates and prints the active configuration
- Scores a single animal from a JSON request
- Recalculates a whole dataset as a batch
- Describes factors and severity tiers

Results are printed as JSON on stdout; logs go to stderr.

============================================================
USAGE
============================================================
python -m shelter_risk validate-config --config risk.yaml
python -m shelter_risk score --input animal.json
python -m shelter_risk recalculate --dataset shelter.json --organization org-1
python -m shelter_risk factors

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError

from database.engine import (
    create_database_engine,
    dispose_engine,
    get_session_factory,
    init_database,
)

from .alerting import LoggingAlertSink
from .batch import BatchRecalculator
from .config import RiskScoringConfig, load_config
from .engine import RiskScoringEngine, describe_factors, format_risk_summary
from .memory import InMemoryRiskProfileStore
from .profile import assemble_profile, summarize_profiles
from .repository import SqlAlchemyRiskProfileStore
from .schemas import DatasetSchema, ScoringRequest
from .service import RiskScoringService
from .types import AnimalStatus, ConfigurationError


logger = logging.getLogger(__name__)


# ============================================================
# LOGGING
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "json") -> None:
    """
    Set up structured logging on stderr.

    Args:
        level: Log level
        log_format: Output format (json or text)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="shelter-risk",
        description="Urgency scoring for animals in shelter care",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  validate-config  - Load, validate and print the configuration
  score            - Score one animal from a JSON request
  recalculate      - Recalculate every animal of a dataset
  factors          - Describe factors, weights and severity tiers

Examples:
  %(prog)s validate-config --config risk.yaml
  %(prog)s score --input animal.json --format text
  %(prog)s recalculate --dataset shelter.json --organization org-1
        """
    )

    # --------------------------------------------------------
    # Configuration Options
    # --------------------------------------------------------
    config_group = parser.add_argument_group("Configuration Options")

    config_group.add_argument(
        "--config", "-c",
        type=str,
        metavar="PATH",
        help="YAML config file (default: RISK_CONFIG_PATH, then RISK_* environment variables)",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="json",
        help="Logging format (default: json)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    # --------------------------------------------------------
    # Commands
    # --------------------------------------------------------
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    subparsers.add_parser("validate-config", help="Validate and print the configuration")
    subparsers.add_parser("factors", help="Describe factors and severity tiers")

    score = subparsers.add_parser("score", help="Score one animal")
    score.add_argument("--input", "-i", required=True, metavar="FILE", help="JSON scoring request")
    score.add_argument(
        "--as-of",
        metavar="YYYY-MM-DD",
        help="Reference date (default: request as_of, then today)",
    )
    score.add_argument(
        "--format",
        choices=["json", "text"],
        default="json",
        help="Output format (default: json)",
    )

    recalc = subparsers.add_parser("recalculate", help="Recalculate a dataset")
    recalc.add_argument("--dataset", "-d", required=True, metavar="FILE", help="JSON dataset")
    recalc.add_argument("--organization", "-o", metavar="ID", help="Only this organization")
    recalc.add_argument("--as-of", metavar="YYYY-MM-DD", help="Reference date (default: today)")
    recalc.add_argument(
        "--database-url",
        metavar="URL",
        help="Persist profiles with SQLAlchemy (default: in memory)",
    )
    recalc.add_argument("--top", type=int, default=5, help="Top at-risk animals to list (default: 5)")

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Returns:
        List of validation errors
    """
    errors = []

    if getattr(args, "as_of", None):
        try:
            date.fromisoformat(args.as_of)
        except ValueError as e:
            errors.append(f"Invalid --as-of date: {e}")

    for name in ("input", "dataset"):
        path = getattr(args, name, None)
        if path and not Path(path).is_file():
            errors.append(f"File not found: {path}")

    if getattr(args, "top", 1) < 1:
        errors.append("--top must be at least 1")

    return errors


def _parse_as_of(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.combine(date.fromisoformat(value), time.min, tzinfo=timezone.utc)


def _read_json(path: str) -> Any:
    with open(path, "r") as f:
        return json.load(f)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


# ============================================================
# COMMANDS
# ============================================================

def cmd_validate_config(config: RiskScoringConfig, args: argparse.Namespace) -> int:
    _print_json({"valid": True, "config": config.to_dict()})
    return 0


def cmd_factors(config: RiskScoringConfig, args: argparse.Namespace) -> int:
    _print_json(describe_factors(config))
    return 0


def cmd_score(config: RiskScoringConfig, args: argparse.Namespace) -> int:
    request = ScoringRequest.model_validate(_read_json(args.input))
    snapshot, context = request.to_domain()

    as_of = _parse_as_of(args.as_of) or request.as_of
    assessment = RiskScoringEngine(config).score(snapshot, context, as_of=as_of)
    profile = assemble_profile(assessment, calculated_at=assessment.assessed_at)

    if args.format == "text":
        print(format_risk_summary(profile))
    else:
        _print_json(profile.to_dict())
    return 0


async def cmd_recalculate(config: RiskScoringConfig, args: argparse.Namespace) -> int:
    dataset = DatasetSchema.model_validate(_read_json(args.dataset))
    provider, invalid = dataset.build_provider(organization_id=args.organization)

    as_of = _parse_as_of(args.as_of)
    engine = None
    if args.database_url:
        engine = create_database_engine(args.database_url)
        await init_database(engine)
        store = SqlAlchemyRiskProfileStore(get_session_factory(engine))
    else:
        store = InMemoryRiskProfileStore()

    try:
        service = RiskScoringService(
            provider,
            store,
            config=config,
            alert_sink=LoggingAlertSink(),
            clock=(lambda: as_of) if as_of is not None else None,
        )
        batch = BatchRecalculator(service, provider)

        if args.organization:
            summary = await batch.recalculate_organization(args.organization)
        else:
            summary = await batch.recalculate_animals(
                provider.animal_ids(AnimalStatus.active_statuses())
            )

        if invalid:
            summary = replace(
                summary,
                total=summary.total + len(invalid),
                errors=tuple(invalid) + summary.errors,
            )

        profiles = []
        for animal_id in provider.animal_ids():
            profile = await store.get(animal_id)
            if profile is not None:
                profiles.append(profile)

        _print_json({
            "batch": summary.to_dict(),
            "summary": summarize_profiles(profiles, top_n=args.top).to_dict(),
        })
        return 0 if not summary.errors else 1
    finally:
        if engine is not None:
            await dispose_engine()


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level, args.log_format)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 2

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        if args.command == "validate-config":
            return cmd_validate_config(config, args)
        if args.command == "factors":
            return cmd_factors(config, args)
        if args.command == "score":
            return cmd_score(config, args)
        if args.command == "recalculate":
            return asyncio.run(cmd_recalculate(config, args))
    except (ValidationError, json.JSONDecodeError) as e:
        print(f"Error: invalid input: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
