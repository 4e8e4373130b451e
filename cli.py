#!/usr/bin/env python
"""
Command-line interface for Conflator

Usage:
    python cli.py conflate --input data.json --output conflated.json --yes
    python cli.py check --input conflated.json
    python cli.py merge-ways --input data.json --output merged.json
"""

import os
import sys
import argparse

# Add package root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from loguru import logger
from conflator.config import load_config_from_env, validate_config
from conflator.data import OsmWay, load_dataset, save_dataset
from conflator.conflation import (
    AcceptAllDecisionProvider,
    ConflationError,
    ConflationPipeline,
    ConsoleDecisionProvider,
    DirectiveCodec,
    MergeDuplicateWaysCommand,
    UploadBlocked,
    UploadGuard,
    default_registry,
)


def setup_logging(verbose: bool = False):
    """Configure logging"""
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{message}</cyan>",
        level=level
    )


def load_settings(args):
    """Configuration from the environment / .env, with CLI overrides"""
    config = load_config_from_env(args.env)
    if getattr(args, "already_conflated_key", None):
        config.already_conflated_key = args.already_conflated_key
    if getattr(args, "no_address_merge", False):
        config.address.enabled = False
    validate_config(config)
    return config


def resolve_affected(dataset, refs):
    """Primitives named by ``refs`` (e.g. "node -1,w-2"); all new ones if empty"""
    if not refs:
        return [p for p in dataset.all_primitives() if p.is_new]
    affected = []
    for ref in DirectiveCodec.decode_references("--affected-ids", ",".join(refs)):
        affected.append(DirectiveCodec.resolve(dataset, ref))
    return affected


def cmd_conflate(args):
    """Run the conflation passes over a dataset"""
    setup_logging(args.verbose)

    if not os.path.exists(args.input):
        logger.error(f"Input file not found: {args.input}")
        return 1

    try:
        config = load_settings(args)
        dataset = load_dataset(args.input)
        affected = resolve_affected(dataset, args.affected_ids)
        if not affected:
            logger.warning("Nothing to conflate: no affected primitives")

        provider = AcceptAllDecisionProvider() if args.yes else ConsoleDecisionProvider()
        pipeline = ConflationPipeline(dataset, config=config, provider=provider)
        result = pipeline.run(affected)

        save_dataset(dataset, args.output, include_deleted=args.keep_deleted)
        logger.info(f"✓ Conflated: {args.output}")
        logger.info(f"  Fixes: {result.fixes}")
        for summary in result.report.passes:
            note = " (skipped, conflicting pass ran)" if summary.skipped_conflict else ""
            logger.info(f"  {summary.name}: {summary.edits} edit(s) / {summary.considered} considered{note}")
        if result.report.leftovers:
            logger.warning(f"  {len(result.report.leftovers)} object(s) still carry conflation keys")

        if args.report:
            pipeline.save_report(result, args.report)

        return 0

    except (ConflationError, ValueError) as e:
        logger.error(f"Failed to conflate: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def cmd_check(args):
    """Check that a dataset can be published"""
    setup_logging(args.verbose)

    if not os.path.exists(args.input):
        logger.error(f"Input file not found: {args.input}")
        return 1

    try:
        config = load_settings(args)
        dataset = load_dataset(args.input)
        guard = UploadGuard(default_registry(config))

        if args.strip:
            cleanup = guard.build_cleanup_command(dataset)
            if cleanup is not None:
                cleanup.execute()
                logger.info(f"Removed leftover keys: {cleanup.description}")
            save_dataset(dataset, args.strip, include_deleted=True)
            logger.info(f"✓ Cleaned: {args.strip}")

        guard.check(dataset)
        logger.info(f"✓ {args.input} can be uploaded")
        return 0

    except UploadBlocked as e:
        logger.error(str(e))
        return 2
    except (ConflationError, ValueError) as e:
        logger.error(f"Failed to check: {e}")
        return 1


def cmd_merge_ways(args):
    """Merge overlapping duplicate ways"""
    setup_logging(args.verbose)

    if not os.path.exists(args.input):
        logger.error(f"Input file not found: {args.input}")
        return 1

    try:
        config = load_settings(args)
        dataset = load_dataset(args.input)
        ways = []
        if args.way_ids:
            for ref in DirectiveCodec.decode_references("--way-ids", ",".join(args.way_ids)):
                way = DirectiveCodec.resolve(dataset, ref)
                if not isinstance(way, OsmWay):
                    raise ValueError(f"{ref} is not a way")
                ways.append(way)

        command = MergeDuplicateWaysCommand(dataset, ways, config=config)
        command.execute()

        save_dataset(dataset, args.output, include_deleted=args.keep_deleted)
        logger.info(f"✓ Merged {len(command.merges)} duplicate way(s): {args.output}")
        return 0

    except (ConflationError, ValueError) as e:
        logger.error(f"Failed to merge ways: {e}")
        return 1


def main():
    parser = argparse.ArgumentParser(
        description="Conflator CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Conflate all new primitives, accepting every proposal:
    python cli.py conflate --input data.json --output conflated.json --yes

  Conflate selected primitives and write a report:
    python cli.py conflate -i data.json -o out.json --affected-ids "w-1,n-5" --report report.json

  Check for leftover conflation keys:
    python cli.py check --input out.json

  Merge duplicate ways across the whole dataset:
    python cli.py merge-ways -i data.json -o merged.json
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--env", help="Path to a .env file with CONFLATOR_* settings")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Conflate command
    conflate_parser = subparsers.add_parser("conflate", help="Run the conflation passes")
    conflate_parser.add_argument("--input", "-i", required=True, help="Input dataset JSON file")
    conflate_parser.add_argument("--output", "-o", required=True, help="Output dataset JSON file")
    conflate_parser.add_argument(
        "--affected-ids", nargs="*", default=[],
        help="Primitives to conflate, e.g. 'node -1' w-2 (default: every new primitive)"
    )
    conflate_parser.add_argument("--already-conflated-key", help="Marker key used by the data source")
    conflate_parser.add_argument("--yes", "-y", action="store_true", help="Accept every proposal without asking")
    conflate_parser.add_argument("--no-address-merge", action="store_true", help="Skip building/address merging")
    conflate_parser.add_argument("--keep-deleted", action="store_true", help="Write deleted primitives too")
    conflate_parser.add_argument("--report", "-r", help="Write a JSON report of the run")
    conflate_parser.set_defaults(func=cmd_conflate)

    # Check command
    check_parser = subparsers.add_parser("check", help="Refuse datasets with leftover conflation keys")
    check_parser.add_argument("--input", "-i", required=True, help="Dataset JSON file")
    check_parser.add_argument("--already-conflated-key", help="Marker key used by the data source")
    check_parser.add_argument("--strip", help="Remove leftover keys and write the result here")
    check_parser.set_defaults(func=cmd_check)

    # Merge-ways command
    merge_parser = subparsers.add_parser("merge-ways", help="Merge overlapping duplicate ways")
    merge_parser.add_argument("--input", "-i", required=True, help="Input dataset JSON file")
    merge_parser.add_argument("--output", "-o", required=True, help="Output dataset JSON file")
    merge_parser.add_argument(
        "--way-ids", nargs="*", default=[],
        help="One way to check against its neighbours, or ways compared in order (default: every way)"
    )
    merge_parser.add_argument("--keep-deleted", action="store_true", help="Write deleted primitives too")
    merge_parser.set_defaults(func=cmd_merge_ways)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
