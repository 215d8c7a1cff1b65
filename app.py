"""
StockMeta - Command Line
Generate stock-marketplace metadata for a batch of images, videos and vectors.

Main entry point: loads previews, runs the orchestrator and prints one JSON
row per file.
"""

import argparse
import asyncio
import logging
import os
import sys

from stockmeta.ai_providers import HttpVisionCaller, get_provider_names
from stockmeta.config import (
    MAX_WORKERS,
    SettingsStore,
    default_settings_path,
    load_api_keys,
    smart_defaults,
)
from stockmeta.errors import ConfigError
from stockmeta.key_pool import KeyPool, RunContext
from stockmeta.media import load_image_data
from stockmeta.models import FileJob, GenerationRequest
from stockmeta.orchestrator import run_parallel, run_sequential
from stockmeta.retry import RetryTracker

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="stockmeta",
        description="Generate titles, descriptions and keywords for stock assets.",
    )
    parser.add_argument("files", nargs="+", help="Images, videos or vector files")
    parser.add_argument("--platform", choices=["general", "adobe", "shutterstock"], default="general")
    parser.add_argument("--provider", choices=get_provider_names(), default="Gemini")
    parser.add_argument("--model", help="Provider model (defaults to the provider's first model)")
    parser.add_argument("--api-key", action="append", dest="api_keys",
                        help="API key; repeat for parallel workers (else read from the environment)")
    parser.add_argument("--title-len", type=int, help="Maximum title length (20-200)")
    parser.add_argument("--keywords", type=int, dest="keyword_count", help="Keyword count (5-49)")
    parser.add_argument("--auto-keywords", action="store_true", help="Let the model pick the keyword count")
    parser.add_argument("--asset-type", default="auto",
                        choices=["auto", "photo", "illustration", "vector", "3d", "icon", "video"])
    parser.add_argument("--prefix", default="")
    parser.add_argument("--suffix", default="")
    parser.add_argument("--negative-title", action="append", default=[], help="Word to keep out of titles")
    parser.add_argument("--negative-keyword", action="append", default=[], help="Keyword to exclude")
    background = parser.add_mutually_exclusive_group()
    background.add_argument("--transparent", action="store_true", help="Isolated on transparent background")
    background.add_argument("--white", action="store_true", help="Isolated on white background")
    parser.add_argument("--vector", action="store_true")
    parser.add_argument("--illustration", action="store_true")
    parser.add_argument("--parallel", action="store_true", help="One worker per API key")
    parser.add_argument("--settings", default=None, help="SQLite file for remembered options")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def build_request(args, store):
    extensions = [os.path.splitext(f)[1] for f in args.files]
    defaults = smart_defaults(extensions, args.platform,
                              None if args.asset_type == "auto" else args.asset_type)
    title_len = args.title_len or int(store.get(f"{args.platform}_title_len", defaults["title_len"]))
    keyword_count = args.keyword_count or int(store.get(f"{args.platform}_keyword_count",
                                                        defaults["keyword_count"]))
    return GenerationRequest(
        platform=args.platform,
        title_len=title_len,
        keyword_mode="auto" if args.auto_keywords else "fixed",
        keyword_count=keyword_count,
        asset_type=args.asset_type,
        prefix=args.prefix,
        suffix=args.suffix,
        negative_title=args.negative_title,
        negative_keywords=args.negative_keyword,
        isolated_on_transparent_background=args.transparent,
        isolated_on_white_background=args.white,
        is_vector=args.vector,
        is_illustration=args.illustration,
    )


def load_jobs(paths):
    jobs = []
    for path in paths:
        if not os.path.isfile(path):
            logger.warning("Skipping missing file: %s", path)
            continue
        jobs.append(FileJob(filename=os.path.basename(path), path=path, image_data=load_image_data(path)))
    return jobs


def _print_row(row):
    print(row.model_dump_json(), flush=True)


def _print_retry(event):
    if event.status == "retrying":
        logger.info("%s: %s, retry %d/%d in %.0fs", event.filename, event.error_type,
                    event.attempt, event.max_attempts, event.delay or 0)


async def run(args):
    store = SettingsStore(args.settings or default_settings_path())
    request = build_request(args, store)
    keys = load_api_keys(args.provider, args.api_keys)
    if not args.parallel:
        keys = keys[:1]

    jobs = load_jobs(args.files)
    caller = HttpVisionCaller(args.provider, args.model)
    context = RunContext(KeyPool(keys))
    tracker = RetryTracker()
    tracker.subscribe(_print_retry)

    if args.parallel:
        result = await run_parallel(jobs, request, caller, context, MAX_WORKERS,
                                    on_row=_print_row, on_retry=tracker.emit)
    else:
        result = await run_sequential(jobs, request, caller, context,
                                      on_row=_print_row, on_retry=tracker.emit)

    store.save(f"{args.platform}_title_len", request.title_len)
    store.save(f"{args.platform}_keyword_count", request.keyword_count)
    logger.info("Done: %d succeeded, %d failed", len(result.succeeded), len(result.failed))
    return 1 if result.failed else 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return asyncio.run(run(args))
    except ConfigError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
