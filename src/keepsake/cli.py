"""
Command line interface for Keepsake.

    keepsake add URL [--title TITLE] [--no-archive]
    keepsake archive ID
    keepsake file ID [PATH] [-o OUT]
    keepsake ebook ID [ID ...] -o OUT [--title TITLE]
    keepsake encoders
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import KeepsakeConfig
from .core.errors import KeepsakeError
from .core.logger import initialize_logging
from .core.models import EbookExportRequest
from .core.service import ArchiveService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="keepsake", description="Archive bookmarked pages for offline reading.")
    parser.add_argument("--data-dir", help="Directory holding bookmarks and archives (env KEEPSAKE_DATA_DIR)")
    parser.add_argument("--log-dir", help="Directory for log files (env KEEPSAKE_LOG_DIR)")
    parser.add_argument("--timeout", type=float, help="Fetch timeout in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")

    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Add a bookmark and archive it")
    add.add_argument("url")
    add.add_argument("--title", default="")
    add.add_argument("--no-archive", action="store_true", help="Only store the bookmark")

    archive = sub.add_parser("archive", help="(Re)generate the archive of a bookmark")
    archive.add_argument("id", type=int)

    file_cmd = sub.add_parser("file", help="Extract a resource from a bookmark's archive")
    file_cmd.add_argument("id", type=int)
    file_cmd.add_argument("path", nargs="?", default="", help="Resource path; empty for the root document")
    file_cmd.add_argument("-o", "--output", help="Write to this file instead of stdout")

    ebook = sub.add_parser("ebook", help="Export bookmarks into one PDF")
    ebook.add_argument("ids", type=int, nargs="+")
    ebook.add_argument("-o", "--output", required=True)
    ebook.add_argument("--title", default="Keepsake reading list")
    ebook.add_argument("--skip-existing", action="store_true")

    sub.add_parser("encoders", help="List registered archivers in dispatch order")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = KeepsakeConfig.from_env()
    if args.data_dir:
        config.data_dir = args.data_dir
    if args.log_dir:
        config.log_dir = args.log_dir
    if args.timeout:
        config.fetch_timeout = args.timeout

    logger = initialize_logging(config.log_dir, logging.DEBUG if args.verbose else logging.INFO)
    service = ArchiveService.from_config(config)

    try:
        if args.command == "encoders":
            for name in service.dispatcher.registry.names:
                print(name)
            return 0

        if args.command == "add":
            bookmark = service.store.create(args.url, title=args.title)
            print(f"Added bookmark {bookmark.id}: {bookmark.url}")
            if args.no_archive:
                return 0
            updated = service.generate_bookmark_archive(bookmark.to_dict())
            print(f"Archived with {updated['archiver']}")
            return 0

        if args.command == "ebook":
            request = EbookExportRequest(bookmark_ids=args.ids, output_path=args.output,
                                         title=args.title, skip_existing=args.skip_existing)
            result = service.generate_bookmark_ebook(request)
            print(f"Wrote {result.output_path} ({len(result.included)} included, {len(result.skipped)} skipped)")
            return 0

        bookmark = service.store.get(args.id)
        if bookmark is None:
            print(f"Bookmark {args.id} not found", file=sys.stderr)
            return 1

        if args.command == "archive":
            updated = service.generate_bookmark_archive(bookmark.to_dict())
            print(f"Archived bookmark {args.id} with {updated['archiver']}")
            return 0

        if args.command == "file":
            archive_file = service.get_bookmark_archive_file(bookmark.to_dict(), args.path)
            if args.output:
                with open(args.output, "wb") as f:
                    f.write(archive_file.content)
                print(f"Wrote {archive_file.size} bytes ({archive_file.content_type}) to {args.output}")
            else:
                sys.stdout.buffer.write(archive_file.content)
            return 0
    except KeepsakeError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        service.close()

    return 1


if __name__ == "__main__":
    sys.exit(main())
