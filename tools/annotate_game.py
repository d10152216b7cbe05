#!/usr/bin/env python3
"""
CLI tool for annotating a PGN game with engine scores.

Usage:
    python tools/annotate_game.py game.pgn --depth 12

    python tools/annotate_game.py games.pgn \\
        --game-index 2 \\
        --backward \\
        --single-channel \\
        --output annotated.txt
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from game_annotator.analysis import (
    InvalidGameError,
    ReplayConfig,
    ReplayTimeout,
    WalkOrder,
    annotate_pgn,
)


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_engine_options(values):
    """Turn ["Threads=4", "Hash=256"] into {"Threads": "4", "Hash": "256"}."""
    options = {}
    for item in values or []:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got {item!r}")
        options[name.strip()] = value.strip()
    return options


def annotate(args):
    """Run the annotation and write the transcript."""
    pgn_path = Path(args.pgn)
    if not pgn_path.exists():
        print(f"Error: PGN file not found: {pgn_path}")
        sys.exit(1)

    config = ReplayConfig(
        depth=args.depth,
        orientation=WalkOrder.BACKWARD if args.backward else WalkOrder.FORWARD,
        static_eval=not args.no_eval,
        dual_channel=not args.single_channel,
        engine_path=args.stockfish_path,
        engine_options=parse_engine_options(args.option),
        ply_timeout=args.timeout if args.timeout > 0 else None,
        game_index=args.game_index,
    )

    pgn_text = pgn_path.read_text(encoding="utf-8", errors="ignore")
    result = annotate_pgn(pgn_text, config, progress=not args.quiet)

    if args.output:
        output_path = Path(args.output)
        output_path.write_text(result.annotated.rstrip() + "\n", encoding="utf-8")
        print(f"Annotated game written to {output_path}")
    else:
        print(result.annotated)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Annotate a PGN game with per-move engine scores",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "pgn",
        help="PGN file to annotate",
    )
    parser.add_argument(
        "--depth",
        type=int,
        default=12,
        help="Search depth per position",
    )
    parser.add_argument(
        "--game-index",
        type=int,
        default=0,
        help="Zero-based index of the game when the file holds several",
    )
    parser.add_argument(
        "--backward",
        action="store_true",
        help="Walk the game from the last move back to the first",
    )
    parser.add_argument(
        "--no-eval",
        action="store_true",
        help="Skip static evaluation",
    )
    parser.add_argument(
        "--single-channel",
        action="store_true",
        help="Run search and static evaluation on one engine process",
    )
    parser.add_argument(
        "--stockfish-path",
        type=str,
        default=None,
        help="Path to Stockfish binary (default: auto-detect)",
    )
    parser.add_argument(
        "--option",
        action="append",
        metavar="NAME=VALUE",
        help="UCI option to set, may be repeated (e.g. Threads=4)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Seconds allowed per position (0 = no limit)",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write the transcript here instead of stdout",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Hide the progress bar",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    setup_logging(verbose=args.verbose)

    try:
        annotate(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(1)
    except (InvalidGameError, ReplayTimeout, FileNotFoundError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"\n\nError: {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
