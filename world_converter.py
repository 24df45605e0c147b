#!/usr/bin/env python3
import argparse
import sys

from converter import run_pmf_conversion


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Convert a legacy PMF world into a chunk-storage world folder."
    )
    parser.add_argument(
        "--input",
        required=True,
        help="Path to PMF world folder (contains level.pmf and chunks/)",
    )
    parser.add_argument(
        "--output",
        required=True,
        help="Path to output world folder",
    )
    parser.add_argument(
        "--mapping",
        default=None,
        help="Optional mapping JSON to override legacy block mappings",
    )
    parser.add_argument(
        "--default-block",
        default=None,
        help="Block used for unmapped legacy entries (e.g., air or stone)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on the first unmapped legacy block instead of substituting.",
    )

    args = parser.parse_args(argv)
    try:
        run_pmf_conversion(
            args.input,
            args.output,
            mapping_path=args.mapping,
            default_block=args.default_block,
            strict=args.strict,
        )
    except (OSError, ValueError, KeyError, RuntimeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
