#!/usr/bin/env python3
"""
EDI Validator Command Line Tool

Validates X12 and EDIFACT files against versioned schemas and tidies their delimiters.

Usage:
    python main.py validate orders.edi                       # Validate, dialect detected
    python main.py validate orders.edi --json                # Machine-readable report
    python main.py normalize orders.edi -o clean.edi         # Standard delimiters
    python main.py format orders.edi                         # Standard delimiters + one segment per line
    python main.py lookup orders.edi 3 12                    # What is at line 3, column 12
    python main.py update-ids orders.edi --sender-id ACME    # Rewrite envelope sender
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Try importing from installed package first, fallback to src path
try:
    from cdm import Dialect, EdiError, NoEnvelopeError, ScanStatus
    from edi_delimiters import add_line_breaks, normalize_delimiters
    from edi_detection import detect_document
    from edi_envelope import EdifactParty, X12Party, find_message_type, update_edifact_ids, update_x12_ids
    from edi_lookup import EdiLookup, SegmentLookup
    from schema_manager import SchemaManager
    from validation_service import EDIValidationService
except ImportError:
    # Add src to path for imports when not installed
    sys.path.insert(0, str(Path(__file__).parent / "src"))
    from cdm import Dialect, EdiError, NoEnvelopeError, ScanStatus
    from edi_delimiters import add_line_breaks, normalize_delimiters
    from edi_detection import detect_document
    from edi_envelope import EdifactParty, X12Party, find_message_type, update_edifact_ids, update_x12_ids
    from edi_lookup import EdiLookup, SegmentLookup
    from schema_manager import SchemaManager
    from validation_service import EDIValidationService

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_NO_ENVELOPE = 2

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s:%(lineno)d] - %(message)s"


def read_edi(path: str) -> str:
    # newline='' keeps CR characters so column offsets match the file.
    with open(path, 'r', encoding='utf-8', newline='') as f:
        return f.read()


def write_output(text: str, output_file: str):
    with open(output_file, 'w', encoding='utf-8', newline='') as f:
        f.write(text)


def validate_command(args) -> int:
    edi_content = read_edi(args.file)
    service = EDIValidationService(schema_base_path=args.schemas)
    result = service.validate_edi(edi_content, args.dialect)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    elif result.status == ScanStatus.NO_ENVELOPE:
        print(f"Validation could not run: {result.findings[0].message}")
    elif result.valid:
        print(f"{args.file}: no issues found (schema version {result.version})")
    else:
        print(f"{args.file}: {len(result.findings)} issue(s) found (schema version {result.version})")
        for finding in result.findings:
            loc = finding.location
            print(f"  line {loc.get('line_number')}, col {loc.get('start_col', 0) + 1} "
                  f"[{loc.get('context')}] {finding.code}: {finding.message}")

    if result.status == ScanStatus.NO_ENVELOPE:
        return EXIT_NO_ENVELOPE
    return EXIT_OK if result.valid else EXIT_FINDINGS


def normalize_command(args) -> int:
    text = read_edi(args.file)
    context = detect_document(text, args.dialect)
    result = normalize_delimiters(text, context.dialect)
    if args.format:
        broken = add_line_breaks(result.text, result.after or context.delimiters)
        if broken.changed:
            result = result.model_copy(update={"text": broken.text, "changed": True,
                                               "message": f"{result.message}; {broken.message}"})
    print(result.message, file=sys.stderr)
    if args.output:
        write_output(result.text, args.output)
        print(f"Output saved to: {args.output}", file=sys.stderr)
    elif result.changed:
        sys.stdout.write(result.text)
    return EXIT_OK


def lookup_command(args) -> int:
    text = read_edi(args.file)
    lookup = EdiLookup(SchemaManager(schema_base_path=args.schemas))
    # The command line counts lines and columns from 1.
    result = lookup.lookup(text, args.line - 1, args.column - 1, args.dialect)
    if result is None:
        print("No segment at that position")
        return EXIT_FINDINGS

    if isinstance(result, SegmentLookup):
        name = result.segment.name if result.segment else "(no definition)"
        print(f"{result.label} - {name}")
        if result.segment and result.segment.description:
            print(f"  {result.segment.description}")
        return EXIT_OK

    name = result.element.name if result.element else (result.element_ref.name if result.element_ref else "")
    print(f"{result.label} - {name or '(no definition)'}")
    print(f"  Current value: {result.value!r}")
    if result.translation:
        print(f"  Meaning: {result.translation}")
    if result.validation is not None and not result.validation.is_valid:
        print(f"  Invalid: {result.validation.message}")
    if result.codes:
        print("  Available codes:")
        for code in result.codes:
            print(f"    {code.code} - {code.description}")
        if result.more_codes:
            print(f"    ...and {result.more_codes} more")
    return EXIT_OK


def update_ids_command(args) -> int:
    text = read_edi(args.file)
    context = detect_document(text, args.dialect)
    if context.dialect == Dialect.X12:
        sender = receiver = None
        if args.sender_id:
            sender = X12Party(qualifier=args.sender_qualifier or "ZZ", isa_id=args.sender_id,
                              gs_id=args.sender_gs_id or args.sender_id)
        if args.receiver_id:
            receiver = X12Party(qualifier=args.receiver_qualifier or "ZZ", isa_id=args.receiver_id,
                                gs_id=args.receiver_gs_id or args.receiver_id)
        result = update_x12_ids(text, sender=sender, receiver=receiver)
    else:
        sender = EdifactParty(id=args.sender_id, qualifier=args.sender_qualifier) if args.sender_id else None
        receiver = EdifactParty(id=args.receiver_id, qualifier=args.receiver_qualifier) if args.receiver_id else None
        result = update_edifact_ids(text, sender=sender, receiver=receiver)

    message_type = find_message_type(text, context.dialect)
    print(f"{result.message} ({context.dialect.value.upper()} {message_type or 'message'})", file=sys.stderr)
    write_output(result.text, args.output or args.file)
    return EXIT_OK if result.changed else EXIT_FINDINGS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate and tidy X12 / EDIFACT files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py validate orders.edi --schemas ./schemas
  python main.py format orders.edi -o orders.pretty.edi
  python main.py update-ids orders.edi --sender-qualifier ZZ --sender-id ACME --sender-gs-id ACME
        """
    )
    parser.add_argument('--log-level', default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: WARNING)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    def add_common(sub, schemas: bool = False):
        sub.add_argument('file', help='Input EDI file')
        sub.add_argument('--dialect', choices=[d.value for d in Dialect],
                         help='Force the dialect instead of detecting it')
        if schemas:
            sub.add_argument('--schemas', default='schemas',
                             help='Schema base directory (default: schemas)')

    validate = subparsers.add_parser('validate', help='Validate elements against the schemas')
    add_common(validate, schemas=True)
    validate.add_argument('--json', action='store_true', help='Print the report as JSON')
    validate.set_defaults(func=validate_command)

    normalize = subparsers.add_parser('normalize', help='Rewrite delimiters to the standard set')
    add_common(normalize)
    normalize.add_argument('-o', '--output', help='Output file (default: stdout)')
    normalize.set_defaults(func=normalize_command, format=False)

    fmt = subparsers.add_parser('format', help='Normalize delimiters and put each segment on its own line')
    add_common(fmt)
    fmt.add_argument('-o', '--output', help='Output file (default: stdout)')
    fmt.set_defaults(func=normalize_command, format=True)

    lookup = subparsers.add_parser('lookup', help='Describe the segment or element at a position')
    add_common(lookup, schemas=True)
    lookup.add_argument('line', type=int, help='Line number (1-based)')
    lookup.add_argument('column', type=int, help='Column number (1-based)')
    lookup.set_defaults(func=lookup_command)

    update = subparsers.add_parser('update-ids', help='Rewrite interchange sender/receiver IDs')
    add_common(update)
    update.add_argument('-o', '--output', help='Output file (default: rewrite in place)')
    for party in ('sender', 'receiver'):
        update.add_argument(f'--{party}-qualifier', help=f'{party.title()} qualifier (X12: 2 chars, EDIFACT: 0-4)')
        update.add_argument(f'--{party}-id', help=f'{party.title()} ID (X12 ISA: 1-15, EDIFACT: 1-35)')
        update.add_argument(f'--{party}-gs-id', help=f'{party.title()} GS application code (X12 only)')
    update.set_defaults(func=update_ids_command)

    return parser


def main(argv=None):
    """Main entry point with command line argument parsing."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level, format=LOG_FORMAT, stream=sys.stderr)

    if not Path(args.file).exists():
        print(f"Error: Input file not found: {args.file}")
        return EXIT_FINDINGS

    try:
        return args.func(args)
    except NoEnvelopeError as e:
        print(f"Error: {e}")
        return EXIT_NO_ENVELOPE
    except (EdiError, ValueError) as e:
        print(f"Error: {e}")
        return EXIT_FINDINGS
    except OSError as e:
        print(f"Error: {e}")
        return EXIT_FINDINGS


if __name__ == "__main__":
    exit(main())
