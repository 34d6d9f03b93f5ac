#!/usr/bin/env python3
"""
VIN Verify CLI - Command Line Interface
=======================================

Tooling entry point for checking VINs, trying the extractor on OCR text and
running a full verification on a photo.

Usage:
    vin-verify validate <vin>                      Check structure and check digit
    vin-verify extract <text> [--file F] [--all]   Extract a VIN from OCR text
    vin-verify verify <image> <expected_vin>       Verify a VIN plate photo
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from . import __version__


def cmd_validate(args):
    """Validate a single VIN."""
    from .core import validate_vin, has_valid_manufacturer_code

    result = validate_vin(args.vin)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0 if result.is_fully_valid else 1

    print(f"VIN: {result.vin}")
    print(f"Length OK: {'YES' if result.is_valid_length else 'NO'}")
    if result.invalid_chars:
        print(f"Invalid characters: {', '.join(result.invalid_chars)}")
    print(f"Expected check digit: {result.expected_check_digit or '-'}")
    print(f"Valid check digit: {'YES' if result.checksum_valid else 'NO'}")
    print(f"Known region code: {'YES' if has_valid_manufacturer_code(result.vin) else 'NO'}")

    return 0 if result.is_fully_valid else 1


def cmd_extract(args):
    """Run the label extraction path over OCR text."""
    from .core import contains_label_words, enumerate_candidates, extract_from_label, strip_label_text

    if args.file:
        path = Path(args.file)
        if not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            return 1
        text = path.read_text(encoding='utf-8')
    elif args.text:
        text = args.text
    else:
        print("Error: provide text or --file", file=sys.stderr)
        return 1

    candidate = extract_from_label(text)

    if args.json:
        payload = {
            "candidate": candidate.to_dict() if candidate else None,
            "contains_label_words": contains_label_words(text),
        }
        if args.all:
            payload["candidates"] = enumerate_candidates(strip_label_text(text))
        print(json.dumps(payload, indent=2))
        return 0 if candidate else 1

    if args.all:
        for vin in enumerate_candidates(strip_label_text(text)):
            print(f"  candidate: {vin}")

    if candidate is None:
        print("Extracted VIN: NONE")
        return 1

    print(f"Extracted VIN: {candidate.vin}")
    print(f"Valid check digit: {'YES' if candidate.checksum_valid else 'NO'}")
    print(f"Confidence: {candidate.confidence}")
    return 0


def cmd_verify(args):
    """Verify a VIN plate photo against an expected VIN."""
    from .config import get_config
    from .core import PipelineError
    from .pipeline import VINVerificationPipeline, format_status_notes

    config = get_config()
    if args.policy:
        config.decision.policy = args.policy
    if args.provider:
        config.ocr.provider = args.provider

    try:
        pipeline = VINVerificationPipeline(config=config)
        verdict = pipeline.verify(args.image, args.expected_vin)
    except PipelineError as e:
        if args.json:
            print(json.dumps(e.to_dict(), indent=2))
        else:
            print(f"Error [{e.error_code}]: {e.message}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(verdict.to_dict(), indent=2))
        return 0

    print(f"Expected VIN:   {verdict.expected_vin}")
    print(f"Extracted VIN:  {verdict.extracted_vin or 'NONE'}")
    print(f"Similarity:     {verdict.similarity}%")
    print(f"Check digit:    {'valid' if verdict.is_valid else 'invalid'}")
    print(f"Recommendation: {verdict.recommendation.value} ({verdict.confidence.value})")
    print(f"Variants read:  {verdict.variants_succeeded}")
    print(f"Time:           {verdict.processing_time_ms:.0f} ms")
    print()
    print(format_status_notes(verdict))

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='vin-verify',
        description='VIN Verify - check VIN plate photos against expected VINs',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--log-level', default=None,
                        help='Logging level (default: VIN_LOG_LEVEL or INFO)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Validate command
    validate_parser = subparsers.add_parser('validate', help='Validate a VIN')
    validate_parser.add_argument('vin', help='VIN to validate')
    validate_parser.add_argument('--json', '-j', action='store_true', help='Output as JSON')

    # Extract command
    extract_parser = subparsers.add_parser('extract', help='Extract a VIN from OCR text')
    extract_parser.add_argument('text', nargs='?', help='OCR text')
    extract_parser.add_argument('--file', '-f', help='Read OCR text from a file')
    extract_parser.add_argument('--all', '-a', action='store_true', help='List every candidate')
    extract_parser.add_argument('--json', '-j', action='store_true', help='Output as JSON')

    # Verify command
    verify_parser = subparsers.add_parser('verify', help='Verify a VIN plate photo')
    verify_parser.add_argument('image', help='Image path or http(s) URL')
    verify_parser.add_argument('expected_vin', help='VIN the photo should show')
    verify_parser.add_argument('--policy', choices=['lenient', 'strict'],
                               help='Decision policy (default: VIN_DECISION_POLICY or lenient)')
    verify_parser.add_argument('--provider', choices=['tesseract', 'paddleocr'],
                               help='OCR engine (default: VIN_OCR_PROVIDER or tesseract)')
    verify_parser.add_argument('--json', '-j', action='store_true', help='Output as JSON')

    return parser


def main(argv=None):
    """Main CLI entry point."""
    from .config import get_config

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    # First call configures logging
    get_config()
    if args.log_level:
        logging.getLogger().setLevel(args.log_level.upper())

    commands = {
        'validate': cmd_validate,
        'extract': cmd_extract,
        'verify': cmd_verify,
    }

    return commands[args.command](args)


if __name__ == '__main__':
    sys.exit(main())
