"""Command line entry point for post-sync.

Thin glue: parses arguments, loads configuration, wires the client,
store and engine together and prints results.  Exit codes:

    0  every document succeeded
    1  at least one document failed, or the sync database failed
    2  configuration error
"""

import argparse
import json
import logging
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .config import Config, load_config
from .config_loader import ensure_config, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config, profile_fallbacks
from .converters import MarkdownTransform
from .core import WeChatClient
from .errors import ConfigError, PostSyncError, StoreError
from .file_handler import list_markdown_files
from .logger import setup_logging
from .prompts import AutoConfirmer, Confirmer, InteractiveConfirmer
from .sync import (
    AssetResolver,
    RemoteExistenceOracle,
    SyncEngine,
    SyncMode,
    SyncStore,
    format_sync_report,
    report_to_json,
)
from .sync.reporter import format_publication, format_remote_listing

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

# draft/batchget and freepublish/batchget return at most 20 items per page.
PAGE_SIZE = 20


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="post-sync",
        description="Sync Markdown documents to WeChat Official Account drafts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create or update drafts for every Markdown file in a directory
  post-sync create posts/

  # Publish the latest draft of one document
  post-sync publish posts/hello.md

  # Create/update drafts and publish them in one go
  post-sync --profile work post posts/

  # Write a starter config to ~/.post-sync/config.yml
  post-sync init
        """,
    )
    parser.add_argument(
        "--profile", help="Config profile to use (default: default_profile)"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also append logs to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log record format (default: text)",
    )
    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Answer yes to every confirmation prompt",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"post-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("create", "Create or update drafts for Markdown files"),
        ("post", "Create or update drafts, then publish them"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("path", help="Markdown file or directory")
        p.add_argument(
            "--json", action="store_true", help="Print the report as JSON"
        )

    for name, help_text in (
        ("publish", "Publish the latest draft of each document"),
        ("status", "Refresh and show publication status"),
        ("delete", "Delete published articles (asks first)"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("path", help="Markdown file or directory")

    for name, help_text in (
        ("list-drafts", "List remote drafts"),
        ("list-published", "List published articles"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--offset", type=int, default=0)
        p.add_argument("--count", type=int, default=PAGE_SIZE)

    sub.add_parser("delete-drafts", help="Delete every remote draft (asks first)")

    p = sub.add_parser("init", help="Write a starter config file")
    p.add_argument("path", nargs="?", help="Config file to create")

    return parser


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _load_unified() -> UnifiedConfig:
    try:
        return build_config(load_hierarchical_config())
    except ValidationError as exc:
        raise ConfigError(f"Invalid config file: {exc}") from exc


@contextmanager
def _open_engine(config: Config) -> Iterator[SyncEngine]:
    client = WeChatClient(config)
    with SyncStore(config.db_path, echo=config.debug) as store:
        oracle = RemoteExistenceOracle(client)
        resolver = AssetResolver(
            client,
            store,
            oracle,
            cover_size=config.cover_size,
            timeout=config.request_timeout,
        )
        yield SyncEngine(
            client,
            store,
            MarkdownTransform(resolver),
            oracle,
            default_author=config.default_author,
            default_digest=config.default_digest,
        )


def _for_each(files: list[Path], action: Callable[[Path], None]) -> int:
    """Apply *action* to each file, isolating failures.  Returns the count."""
    failures = 0
    for file in files:
        try:
            action(file)
        except StoreError:
            raise
        except Exception as exc:
            failures += 1
            logger.error("'%s': %s", file, exc)
            details = getattr(exc, "details", None)
            if details:
                logger.error("API Error Details: %s", details)
    return failures


def _markdown_files(path: str) -> list[Path]:
    files = list_markdown_files(path)
    if not files:
        logger.warning("No Markdown files found at the specified path.")
    return files


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_sync(args, config: Config, confirmer: Confirmer) -> int:
    files = _markdown_files(args.path)
    if not files:
        return EXIT_OK
    mode = SyncMode.CREATE
    if args.command == "post":
        mode = SyncMode.CREATE_AND_PUBLISH
    with _open_engine(config) as engine:
        report = engine.run(files, mode)
    if args.json:
        print(json.dumps(report_to_json(report), ensure_ascii=False, indent=2))
    else:
        print(format_sync_report(report))
    return EXIT_OK if report.ok else EXIT_FAILURE


def _cmd_publish(args, config: Config, confirmer: Confirmer) -> int:
    files = _markdown_files(args.path)
    with _open_engine(config) as engine:

        def publish(file: Path) -> None:
            publish_id = engine.publish_document(file)
            print(f"{file} -> {publish_id}")

        failures = _for_each(files, publish)
    return EXIT_FAILURE if failures else EXIT_OK


def _cmd_status(args, config: Config, confirmer: Confirmer) -> int:
    files = _markdown_files(args.path)
    with _open_engine(config) as engine:

        def status(file: Path) -> None:
            record = engine.refresh_publication_status(file)
            print(format_publication(str(file), record))

        failures = _for_each(files, status)
    return EXIT_FAILURE if failures else EXIT_OK


def _cmd_delete(args, config: Config, confirmer: Confirmer) -> int:
    files = _markdown_files(args.path)
    with _open_engine(config) as engine:

        def delete(file: Path) -> None:
            if not confirmer.ask(
                f"Delete the published article for '{file}'? "
                "This cannot be undone."
            ):
                logger.info("Operation for '%s' cancelled by user.", file)
                return
            engine.delete_published_document(file)
            print(f"Deleted published article for {file}")

        failures = _for_each(files, delete)
    return EXIT_FAILURE if failures else EXIT_OK


def _cmd_list(args, config: Config, confirmer: Confirmer) -> int:
    client = WeChatClient(config)
    if args.command == "list-drafts":
        page = client.list_drafts(args.offset, args.count)
        print(format_remote_listing(page, "media_id"))
    else:
        page = client.list_publications(args.offset, args.count)
        print(format_remote_listing(page, "article_id"))
    return EXIT_OK


def _cmd_delete_drafts(args, config: Config, confirmer: Confirmer) -> int:
    client = WeChatClient(config)
    media_ids: list[str] = []
    offset = 0
    while True:
        page = client.list_drafts(offset, PAGE_SIZE)
        items = page.get("item") or []
        media_ids.extend(item["media_id"] for item in items)
        offset += len(items)
        if not items or offset >= int(page.get("total_count", 0)):
            break

    if not media_ids:
        print("No drafts to delete.")
        return EXIT_OK
    if not confirmer.ask(
        f"Delete all {len(media_ids)} drafts? This cannot be undone."
    ):
        logger.info("Bulk draft deletion cancelled by user.")
        return EXIT_OK

    failures = 0
    for media_id in media_ids:
        try:
            client.delete_draft(media_id)
        except Exception as exc:
            failures += 1
            logger.error("Could not delete draft '%s': %s", media_id, exc)
    print(f"Deleted {len(media_ids) - failures} of {len(media_ids)} drafts.")
    return EXIT_FAILURE if failures else EXIT_OK


_COMMANDS = {
    "create": _cmd_sync,
    "post": _cmd_sync,
    "publish": _cmd_publish,
    "status": _cmd_status,
    "delete": _cmd_delete,
    "list-drafts": _cmd_list,
    "list-published": _cmd_list,
    "delete-drafts": _cmd_delete_drafts,
}


def main(
    argv: list[str] | None = None, confirmer: Confirmer | None = None
) -> int:
    """Run one command and return the process exit code."""
    args = build_parser().parse_args(argv)

    # .env first so ${VAR} interpolation in config files can use it
    load_dotenv()

    if args.command == "init":
        setup_logging(
            debug=args.debug, log_file=args.log_file, log_format=args.log_format
        )
        target = Path(args.path).expanduser() if args.path else None
        path = ensure_config(target)
        print(f"Config file: {path}")
        return EXIT_OK

    try:
        unified = _load_unified()
        log_file = args.log_file or unified.logging.file
        setup_logging(
            debug=args.debug,
            log_file=log_file,
            log_format=args.log_format,
            level=unified.logging.level,
        )
        config = load_config(
            debug=args.debug,
            yaml_fallbacks=profile_fallbacks(unified, args.profile),
        )
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    if config.debug and not args.debug:
        setup_logging(debug=True, log_file=log_file, log_format=args.log_format)

    if confirmer is None:
        confirmer = AutoConfirmer() if args.yes else InteractiveConfirmer()

    logger.info("'%s' command called", args.command)
    try:
        return _COMMANDS[args.command](args, config, confirmer)
    except StoreError as exc:
        logger.error("Sync database error, aborting: %s", exc)
        return EXIT_FAILURE
    except (PostSyncError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
