import argparse
import json
import sys

from openstatement.config import get_settings
from openstatement.exceptions import FormatError
from openstatement.integrations.pydantic import from_dataclass
from openstatement.logging_setup import configure_logging, get_logger
from openstatement.parser import FORMATS, StatementParser, convert, format_name
from openstatement.reconciler import Reconciler
from openstatement.validator import Validator

logger = get_logger(__name__)


def _load(path: str, fmt=None):
    """Reads and parses a statement file, exiting with the error text on failure."""
    try:
        with open(path, "rb") as f:
            raw_data = f.read()
    except OSError as e:
        print(f"Error reading {path}: {e}", file=sys.stderr)
        sys.exit(1)
    try:
        return StatementParser(raw_data, fmt).parse()
    except FormatError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)


def handle_parse(args):
    """Handles the 'parse' subcommand: prints the transactions as JSON."""
    document = _load(args.file, args.format)
    transactions = [
        from_dataclass(t).model_dump(mode="json") for t in document.collect_transactions()
    ]
    print(json.dumps(transactions, indent=2, ensure_ascii=False))


def handle_convert(args):
    """Handles the 'convert' subcommand: MT940 <-> CAMT.053 to stdout."""
    document = _load(args.file, args.format)
    try:
        converted = convert(document)
        output = converted.to_bytes()
    except TypeError:
        print(f"Conversion is not available for {format_name(document)} files.", file=sys.stderr)
        sys.exit(1)
    except FormatError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)
    sys.stdout.buffer.write(output)
    sys.stdout.flush()


def handle_compare(args):
    """Handles the 'compare' subcommand: exit 0 on identical transactions, 1 otherwise."""
    first = _load(args.file1, args.format1)
    second = _load(args.file2, args.format2)
    result = Reconciler.compare(first, second)
    print(result.describe(args.file1, args.file2))
    if not result.is_match:
        sys.exit(1)


def handle_validate(args):
    """Handles the 'validate' subcommand: balance and account consistency."""
    document = _load(args.file, args.format)
    report = Validator.validate_document(document)
    if not report.is_valid:
        print("Validation failed:")
        for err in report.errors:
            print(f"  - {err}")
        sys.exit(1)
    print("Validation successful: statement is consistent.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="openstatement",
        description="OpenStatement CLI - parse, convert and compare bank statements.",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (e.g. DEBUG, INFO).")
    subparsers = parser.add_subparsers(dest="command", required=True)
    formats = sorted(FORMATS)

    parse_parser = subparsers.add_parser("parse", help="Print the transactions of a statement as JSON.")
    parse_parser.add_argument("file", help="Path to an MT940, CAMT.053 or CSV statement.")
    parse_parser.add_argument("--format", choices=formats, help="Input format, detected when omitted.")
    parse_parser.set_defaults(func=handle_parse)

    convert_parser = subparsers.add_parser("convert", help="Convert MT940 to CAMT.053 or back.")
    convert_parser.add_argument("file", help="Path to an MT940 or CAMT.053 statement.")
    convert_parser.add_argument("--format", choices=formats, help="Input format, detected when omitted.")
    convert_parser.set_defaults(func=handle_convert)

    compare_parser = subparsers.add_parser("compare", help="Check that two statements hold the same transactions.")
    compare_parser.add_argument("file1", help="Path to the first statement.")
    compare_parser.add_argument("file2", help="Path to the second statement.")
    compare_parser.add_argument("--format1", choices=formats, help="Format of the first file.")
    compare_parser.add_argument("--format2", choices=formats, help="Format of the second file.")
    compare_parser.set_defaults(func=handle_compare)

    validate_parser = subparsers.add_parser("validate", help="Check balances, currencies and IBANs.")
    validate_parser.add_argument("file", help="Path to the statement to validate.")
    validate_parser.add_argument("--format", choices=formats, help="Input format, detected when omitted.")
    validate_parser.set_defaults(func=handle_validate)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or get_settings().log_level)
    logger.debug("Running '%s'", args.command)
    args.func(args)


if __name__ == "__main__":
    main()
