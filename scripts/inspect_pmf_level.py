#!/usr/bin/env python3
import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pmf_level import chunk_file_path, load_level  # noqa: E402


def describe_mask(mask):
    return [y for y in range(16) if mask & (1 << y)]


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Print the level header and sub-chunk layout of a PMF world."
    )
    parser.add_argument(
        "--input",
        required=True,
        help="Path to PMF world folder (contains level.pmf)",
    )
    parser.add_argument(
        "--column",
        nargs=2,
        type=int,
        metavar=("X", "Z"),
        default=None,
        help="Decode one chunk column and list its stored sub-chunks.",
    )

    args = parser.parse_args(argv)
    with load_level(args.input) as level:
        header = level.header
        spawn = ", ".join(f"{v:.2f}" for v in header.spawn)
        print(f"Name:    {level.display_name}")
        print(f"Version: {header.version}")
        print(f"Seed:    {header.seed}")
        print(f"Time:    {header.time}")
        print(f"Spawn:   {spawn}")
        print(f"Size:    {header.width}x{header.width} columns, height {header.height}")
        print(f"Tiles:   {len(level.tiles)}")

        stored = sum(len(describe_mask(mask)) for mask in header.presence)
        populated = sum(1 for mask in header.presence if mask)
        print(f"Sub-chunks: {stored} stored across {populated} columns")

        if args.column is not None:
            column_x, column_z = args.column
            mask = level.presence_mask(column_x, column_z)
            if mask is None:
                print(f"Column {column_x},{column_z} is outside the presence table.")
                return 0
            print(f"Column {column_x},{column_z}: mask 0x{mask:04x}")
            print(f"  file: {chunk_file_path(args.input, column_x, column_z)}")
            chunk = level.chunk(column_x, column_z)
            for sub_y in sorted(chunk.sub_chunks):
                data = chunk.sub_chunks[sub_y]
                # id bytes are the first 16 of every 32-byte run
                solid = sum(
                    1
                    for base in range(0, len(data), 32)
                    for b in data[base : base + 16]
                    if b
                )
                print(f"  sub-chunk {sub_y}: {solid} non-air blocks")
    return 0


if __name__ == "__main__":
    sys.exit(main())
