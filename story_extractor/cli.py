"""
Command-line interface for the story extractor.
"""

import argparse
import json
import logging
import sys
from concurrent.futures import CancelledError
from pathlib import Path
from typing import Optional, Sequence

from .config import ExtractorConfig
from .errors import StoryExtractorError

logger = logging.getLogger("story_extractor.cli")


def validate_payload_file(payload_path: Path) -> bool:
    """Validate that the payload file exists and is non-empty."""
    if not payload_path.exists():
        logger.error("Payload file '%s' does not exist!", payload_path)
        return False
    if not payload_path.is_file():
        logger.error("'%s' is not a file!", payload_path)
        return False
    if payload_path.stat().st_size == 0:
        logger.error("Payload file '%s' is empty!", payload_path)
        return False
    return True


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="story-extractor",
        description="Decode scraped storybook payloads and cache their images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m story_extractor extract scrape.json -o story.json
  python -m story_extractor extract scrape.json --no-hydrate
  python -m story_extractor cache stats
  python -m story_extractor --cache-dir /tmp/images cache evict
        """
    )
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Image cache directory (default: ~/.storyforge/storyforge-images)"
    )
    parser.add_argument(
        "--cache-max-mb",
        type=int,
        default=500,
        help="Maximum cache size in MB (default: 500)"
    )
    parser.add_argument(
        "--cache-threshold-mb",
        type=int,
        default=400,
        help="Cache size eviction brings the cache back under, in MB (default: 400)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_parser = subparsers.add_parser(
        "extract", help="Decode a scrape payload and hydrate its images"
    )
    extract_parser.add_argument("payload", type=Path, help="Path to the scrape JSON payload")
    extract_parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Write the resulting story JSON here (default: stdout)"
    )
    extract_parser.add_argument(
        "--no-hydrate",
        action="store_true",
        help="Only decode; leave remote image URLs in place"
    )
    extract_parser.add_argument(
        "--concurrency",
        type=int,
        default=5,
        help="Parallel image downloads (default: 5)"
    )
    extract_parser.add_argument(
        "--retries",
        type=int,
        default=3,
        help="Retries per image download (default: 3)"
    )
    extract_parser.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help="Extraction session timeout in seconds (default: 300)"
    )
    extract_parser.add_argument(
        "--remove-watermark",
        action="store_true",
        help="Crop a fixed band from the bottom of downloaded images"
    )
    extract_parser.add_argument(
        "--crop-bottom",
        type=int,
        default=40,
        help="Rows to crop when --remove-watermark is set (default: 40)"
    )

    cache_parser = subparsers.add_parser("cache", help="Inspect or maintain the image cache")
    cache_parser.add_argument("action", choices=["stats", "clear", "evict"])

    return parser.parse_args(argv)


def args_to_config(args: argparse.Namespace) -> ExtractorConfig:
    """Convert parsed arguments to ExtractorConfig."""
    options = {
        "cache_max_size_mb": args.cache_max_mb,
        "cache_cleanup_threshold_mb": args.cache_threshold_mb,
    }
    if args.cache_dir is not None:
        options["cache_dir"] = args.cache_dir
    if args.command == "extract":
        options.update(
            hydration_concurrency=args.concurrency,
            retry_attempts=args.retries,
            extraction_timeout_sec=args.timeout,
            remove_watermark=args.remove_watermark,
            watermark_crop_bottom_px=args.crop_bottom,
        )
    return ExtractorConfig(**options)


def _write_story(story, output: Optional[Path]) -> None:
    text = json.dumps(story.to_dict(), indent=2, ensure_ascii=False)
    if output is None:
        sys.stdout.write(text + "\n")
        sys.stdout.flush()
    else:
        output.write_text(text + "\n", encoding="utf-8")
        logger.info("Saved story to %s", output)


def _run_extract(args: argparse.Namespace, config: ExtractorConfig) -> int:
    if not validate_payload_file(args.payload):
        return 1

    # Import here to keep --help fast
    from .steps.decoder import StoryDecoderStep
    from .coordinator import ExtractionCoordinator

    if args.no_hydrate:
        story = StoryDecoderStep(config).execute(args.payload.read_bytes())
        _write_story(story, args.output)
        return 0

    def on_fast(story) -> None:
        logger.info("Decoded '%s': %d scenes, hydrating images...", story.title, len(story.scenes))

    with ExtractionCoordinator(config) as coordinator:
        future = coordinator.submit(args.payload.read_bytes, on_fast=on_fast)
        try:
            story = future.result()
        except CancelledError:
            logger.error("Extraction was superseded")
            return 1

    _write_story(story, args.output)
    return 0


def _run_cache(args: argparse.Namespace, config: ExtractorConfig) -> int:
    from .core.cache import build_cache

    cache = build_cache(config)
    try:
        if args.action == "stats":
            sys.stdout.write(json.dumps(cache.get_stats(), indent=2) + "\n")
        elif args.action == "clear":
            cache.clear()
        else:
            freed = cache.evict()
            logger.info("Freed %d bytes", freed)
    finally:
        cache.fetcher.close()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    try:
        config = args_to_config(args)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    try:
        if args.command == "extract":
            return _run_extract(args, config)
        return _run_cache(args, config)
    except StoryExtractorError as e:
        logger.error("Extraction failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
