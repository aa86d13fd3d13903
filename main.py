#!/usr/bin/env python3
"""
EDI Ingest Command Line Tool

Parses inbound EDI transmission files, validates their envelope structure and
segment content, and writes the parsed tree to JSON.

Usage:
    python main.py input.edi                                # Parse input.edi -> input.json
    python main.py input.edi -o output.json                 # Parse to a specific output file
    python main.py a.edi b.edi --workers 4                  # Parse several files in parallel
    python main.py input.edi --settings settings.json       # Use a settings file
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / "src"))

from edi_errors import InputUnavailableError
from line_source import read_segments
from parser_settings import ParserSettings, UnexpectedSegmentPolicy, load_settings
from processing_service import ProcessingOutcome, TransmissionProcessingService


def build_settings(args: argparse.Namespace) -> ParserSettings:
    """Loads the settings file, if any, and applies command line overrides."""
    settings = load_settings(args.settings) if args.settings else ParserSettings()
    overrides = {}
    if args.delimiter:
        overrides["delimiter"] = args.delimiter
    if args.schema_dir:
        overrides["schema_dir"] = args.schema_dir
    if args.unexpected_segments:
        overrides["unexpected_segment_policy"] = UnexpectedSegmentPolicy(args.unexpected_segments)
    if args.validate_control_segments:
        overrides["validate_control_segments"] = True
    if args.detect_delimiter:
        overrides["detect_delimiter"] = True
    if not overrides:
        return settings
    return ParserSettings.model_validate({**settings.model_dump(), **overrides})


def print_outcome(outcome: ProcessingOutcome) -> None:
    print(f"\nResults for {outcome.source}:")
    if not outcome.succeeded:
        print(f"  Error: {outcome.error}")
        return

    result = outcome.result
    print(f"  Envelopes: {len(result.envelopes)}")
    print(f"  Functional Groups: {result.total_group_count}")
    print(f"  Transaction Sets: {result.total_transaction_count}")
    for envelope in result.envelopes:
        print(f"  Interchange Control Number: {envelope.control_number} "
              f"(Sender: {envelope.sender_id}, Receiver: {envelope.receiver_id})")

    if not result.issues:
        print("  No validation issues found.")
        return
    print(f"  Validation found {len(result.issues)} issues:")
    for i, issue in enumerate(result.issues[:10]):
        print(f"    {i + 1}. [{issue.kind.value}] line {issue.line_number}: {issue.message}")
    if len(result.issues) > 10:
        print(f"    ... and {len(result.issues) - 10} more issues")


def write_output(outcome: ProcessingOutcome, output_file: str) -> None:
    json_output = outcome.result.model_dump_json(indent=2)
    with open(output_file, 'w') as f:
        f.write(json_output)
    print(f"  JSON output saved to: {output_file} ({len(json_output):,} characters)")


def main(argv=None) -> int:
    """Main entry point with command line argument parsing."""

    parser = argparse.ArgumentParser(
        description="Parse and validate inbound EDI transmission files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py invoices.edi                          # Parse invoices.edi -> invoices.json
  python main.py invoices.edi -o out.json              # Parse to specific output
  python main.py a.edi b.edi --workers 2               # Parse two files in parallel
        """
    )
    parser.add_argument('input_files', nargs='+', help='Input EDI transmission file(s)')
    parser.add_argument('-o', '--output', help='Output JSON file (single input only; default: input_file.json)')
    parser.add_argument('--settings', help='JSON settings file')
    parser.add_argument('--delimiter', help='Element delimiter (default: *)')
    parser.add_argument('--schema-dir', help='Directory with additional document schemas')
    parser.add_argument('--unexpected-segments', choices=[p.value for p in UnexpectedSegmentPolicy],
                        help='How to treat segments a document schema does not allow')
    parser.add_argument('--validate-control-segments', action='store_true',
                        help='Also validate ISA/GS/GE/IEA element content')
    parser.add_argument('--detect-delimiter', action='store_true',
                        help='Take the element delimiter from each ISA header')
    parser.add_argument('--workers', type=int, default=1, help='Number of files processed in parallel')
    parser.add_argument('--log-level', default='WARNING', help='Logging level (default: WARNING)')
    parser.add_argument('--no-json', action='store_true', help='Do not write JSON output')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="[%(asctime)s] [%(levelname)s] [%(name)s:%(lineno)d] - %(message)s",
        stream=sys.stderr,
    )

    if args.output and len(args.input_files) > 1:
        print("Error: --output can only be used with a single input file.")
        return 1

    missing = [f for f in args.input_files if not Path(f).exists()]
    if missing:
        for f in missing:
            print(f"Error: Input file not found: {f}")
        return 1

    try:
        settings = build_settings(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: Invalid settings: {e}")
        return 1

    service = TransmissionProcessingService(settings=settings)
    print(f"EDI Ingest - Processing {len(args.input_files)} file(s)")
    print("=" * 50)

    if len(args.input_files) == 1:
        try:
            outcome = service.process_file(args.input_files[0])
        except InputUnavailableError as e:
            outcome = ProcessingOutcome(source=args.input_files[0], error=e)
        outcomes = {args.input_files[0]: outcome}
    else:
        sources = {}
        for input_file in args.input_files:
            try:
                sources[input_file] = read_segments(input_file, settings.segment_terminator)
            except OSError as e:
                print(f"Error: Could not read {input_file}: {e}")
                return 1
        outcomes = service.process_batch(sources, max_workers=max(1, args.workers))

    # 1 if any file failed, else 2 if any file has issues, else 0.
    failed = False
    has_issues = False
    for input_file, outcome in outcomes.items():
        print_outcome(outcome)
        if not outcome.succeeded:
            failed = True
            continue
        if not args.no_json:
            write_output(outcome, args.output or str(Path(input_file).with_suffix('.json')))
        if not outcome.result.is_valid:
            has_issues = True
    if failed:
        return 1
    return 2 if has_issues else 0


if __name__ == "__main__":
    exit(main())
