"""Entry point for the repo-insight command."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import asdict

from .cli import parse_args
from .config import load_config
from .errors import ConfigurationError, DataSourceError, RecordValidationError
from .models import Repository
from .pipeline import generate_report
from .render import render_report
from .sources import JsonExportSource, SourceMode, collect_records

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_DATA_SOURCE = 4
EXIT_RECORD_VALIDATION = 5
EXIT_INVALID_REPORT = 6


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def orchestrate_report_generation() -> int:
    """Run the replay pipeline end to end and print the report.

    Returns:
        Process exit code: 0 on success, 2 for configuration errors, 4 for
        record source failures, 5 for malformed records, 6 when ``--strict``
        is set and the report fails validation, 1 for anything unexpected.
    """
    try:
        args = parse_args()
        configure_logging(args.verbose)

        config = load_config(variance_threshold=args.variance_threshold)
        repository = Repository(owner=args.owner, name=args.name)

        records = collect_records(JsonExportSource(args.input), repository, SourceMode.REPLAY)
        report, validation = generate_report(records, repository.identifier, now=args.as_of, config=config)

        if args.format == "json":
            output = json.dumps(
                {"report": report.to_dict(), "validation": asdict(validation)},
                indent=2,
            )
        else:
            output = render_report(report, validation)
        print(output)

        if args.strict and not validation.valid:
            print(
                f"Report failed validation with {len(validation.errors)} error(s).",
                file=sys.stderr,
            )
            return EXIT_INVALID_REPORT

        return EXIT_OK
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except DataSourceError as exc:
        print(f"Data source error: {exc}", file=sys.stderr)
        return EXIT_DATA_SOURCE
    except RecordValidationError as exc:
        print(f"Invalid record: {exc}", file=sys.stderr)
        return EXIT_RECORD_VALIDATION
    except Exception as exc:
        logger.exception("Unexpected failure while generating report")
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return EXIT_UNEXPECTED


def main() -> None:
    sys.exit(orchestrate_report_generation())


if __name__ == "__main__":
    main()
