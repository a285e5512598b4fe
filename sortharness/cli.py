"""
SortHarness command line.

Usage:
    sortharness --add-sort Mine:./target/release/sort
    sortharness --reference-sort gsort --add-sort Rust:./sort --large --markdown reports/sort.md
    python -m sortharness --help
"""

import argparse
import logging
import sys
from typing import List, Optional

from sortharness.config import (
    CHECKSUM_THRESHOLD_LINES,
    DEFAULT_REFERENCE_COMMAND,
    DEFAULT_REFERENCE_NAME,
    TIMEOUT_BASE_S,
    TIMEOUT_PER_MILLION_S,
    ConfigurationError,
    HarnessConfig,
    parse_candidate_spec,
    select_tiers,
)
from sortharness.harness import Harness


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='sortharness',
        description='Compare sort implementations against a reference for correctness and speed.',
    )
    parser.add_argument('--reference-sort', default=DEFAULT_REFERENCE_COMMAND,
                        help='reference sort command (default: %(default)s)')
    parser.add_argument('--reference-name', default=DEFAULT_REFERENCE_NAME,
                        help='display name of the reference (default: %(default)s)')
    parser.add_argument('--add-sort', action='append', default=[], metavar='NAME:COMMAND',
                        help='candidate implementation to test; may be repeated')
    parser.add_argument('--large', action='store_true',
                        help='add the 10M-line tier, the -b charset tests and the external sort test')
    parser.add_argument('--extralarge', action='store_true',
                        help='add the 10M and 30M-line tiers (implies --large)')
    parser.add_argument('--data-dir', default='.',
                        help='directory holding the generated corpora (default: current directory)')
    parser.add_argument('--checksum-threshold', type=int, default=CHECKSUM_THRESHOLD_LINES,
                        help='above this many lines compare digests instead of diffs (default: %(default)s)')
    parser.add_argument('--timeout', type=float, default=TIMEOUT_BASE_S,
                        help='base per-invocation timeout in seconds (default: %(default)s)')
    parser.add_argument('--timeout-per-million', type=float, default=TIMEOUT_PER_MILLION_S,
                        help='extra timeout seconds per million input lines (default: %(default)s)')
    parser.add_argument('--jobs', type=int, default=1,
                        help='concurrent correctness captures per test case (default: %(default)s)')
    parser.add_argument('--keep-scratch', action='store_true',
                        help='keep captured outputs and scratch corpora after the run')
    parser.add_argument('--json-dir', default=None,
                        help='save results as JSON in this directory')
    parser.add_argument('--markdown', default=None, metavar='PATH',
                        help='write a Markdown report to PATH')
    parser.add_argument('--chart', default=None, metavar='PATH',
                        help='write a speedup bar chart image to PATH')
    parser.add_argument('--no-check-sorted', action='store_true',
                        help='skip the -c check-sorted test')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='log every subprocess invocation')
    return parser


def config_from_args(args: argparse.Namespace) -> HarnessConfig:
    large = args.large or args.extralarge
    return HarnessConfig(
        reference_command=args.reference_sort,
        reference_name=args.reference_name,
        candidates=[parse_candidate_spec(spec) for spec in args.add_sort],
        tiers=select_tiers(large=args.large, extralarge=args.extralarge),
        data_dir=args.data_dir,
        keep_scratch=args.keep_scratch,
        checksum_threshold=args.checksum_threshold,
        timeout_base=args.timeout,
        timeout_per_million=args.timeout_per_million,
        capture_workers=args.jobs,
        check_sorted=not args.no_check_sorted,
        charset_tests=large,
        external_test=large,
        json_dir=args.json_dir,
        markdown_path=args.markdown,
        chart_path=args.chart,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    try:
        harness = Harness(config_from_args(args))
        return harness.run()
    except ConfigurationError as e:
        print(f"sortharness: error: {e}", file=sys.stderr)
        return 2


if __name__ == '__main__':
    sys.exit(main())
