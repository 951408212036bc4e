"""
Command line surface: init, load-models, embed-folder, search-text,
search-audio and clear.
"""

import argparse
import sys

from pydantic import ValidationError

from .api.schemas import BatchEmbedResponse, SearchResponse
from .core import config
from .core.controller import PipelineController
from .core.errors import ClapSearchError
from .vector.types import ClearStatus


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clap-search",
        description="Index audio files as CLAP embeddings and search them by text or audio",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  clap-search embed-folder ~/Music/samples
  clap-search search-text "rain on a tin roof" --k 5
  clap-search search-audio query.wav --json
  clap-search clear
        """,
    )
    parser.add_argument(
        "--store-dir",
        default=None,
        help=f"Directory holding the collection (default: {config.STORE_DIR})"
    )
    parser.add_argument(
        "--store-name",
        default=None,
        help=f"Collection name (default: {config.STORE_NAME})"
    )
    parser.add_argument(
        "--store-provider",
        choices=["sqlite", "memory"],
        default=None,
        help=f"Record store backend (default: {config.STORE_PROVIDER})"
    )
    parser.add_argument(
        "--engine",
        choices=["bruteforce", "faiss"],
        default=None,
        help=f"Ranking engine (default: {config.QUERY_ENGINE})"
    )
    parser.add_argument(
        "--encoder",
        choices=["clap", "hash"],
        default=None,
        help=f"Encoder provider (default: {config.ENCODER_PROVIDER})"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create or open the collection")
    sub.add_parser("load-models", help="Download and load the text and audio encoders")

    embed = sub.add_parser("embed-folder", help="Embed every audio file in a folder")
    embed.add_argument("path", help="Folder to embed")
    embed.add_argument(
        "--no-recursive",
        action="store_true",
        help="Only embed files directly inside the folder"
    )

    for name, target, help_text in (
        ("search-text", "query", "Text to search for"),
        ("search-audio", "path", "Audio file to search with"),
    ):
        search = sub.add_parser(name, help=f"Rank stored audio against {target}")
        search.add_argument(target, help=help_text)
        search.add_argument("--k", type=int, default=config.DEFAULT_TOP_K, help="Number of results")
        search.add_argument("--json", action="store_true", help="Print results as JSON")

    sub.add_parser("clear", help="Delete the whole collection")
    return parser


def _print_results(kind: str, query: str, results) -> None:
    if not results:
        print("No results found.")
        return

    print(f'Showing {len(results)} results for {kind} query: "{query}"')
    for position, result in enumerate(results, start=1):
        print(f"  {position}. {result.record.content} (Similarity Score: {result.similarity:.4f})")


def _run_command(args, controller: PipelineController) -> int:
    if args.command == "init":
        controller.run_init()
        info = controller.readiness()
        print(f"✓ Collection '{info['store']}' ready: {info['records']} records, dimension {info['dimension']}")
        return 0

    if args.command == "load-models":
        controller.run_load_models()
        print("✓ Models loaded")
        return 0

    if args.command == "clear":
        outcome = controller.run_clear()
        if outcome.status == ClearStatus.BLOCKED:
            print(f"ERROR: {outcome.message}")
            print("Close other sessions using this collection and retry.")
            return 1
        if outcome.status == ClearStatus.ERROR:
            print(f"ERROR: {outcome.message}")
            return 1
        print("✓ Database cleared")
        return 0

    controller.run_init()
    controller.run_load_models()

    if args.command == "embed-folder":
        summary = controller.run_embed_folder(args.path, recursive=not args.no_recursive)
        response = BatchEmbedResponse.from_summary(summary)
        print(f"✓ Embedded {response.processed} files, skipped {response.skipped}, {len(response.errors)} errors")
        for item in response.errors:
            print(f"  ✗ {item.file}: {item.error}")
        return 0

    if args.command == "search-text":
        kind, query = "text", args.query
    else:
        kind, query = "audio", args.path

    results = controller.run_search(kind, query, k=args.k)
    if args.json:
        print(SearchResponse.from_results(kind, query, results).model_dump_json(indent=2))
    else:
        _print_results(kind, query, results)
    return 0


def main(argv=None) -> int:
    """Entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    issues = config.validate_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        return 1

    context = config.build_context(
        store_provider=args.store_provider,
        store_dir=args.store_dir,
        store_name=args.store_name,
        engine=args.engine,
        encoder_provider=args.encoder,
    )
    quiet = getattr(args, "json", False)
    controller = PipelineController(context, status=None if quiet else print)

    try:
        return _run_command(args, controller)
    except (ClapSearchError, ValidationError, FileNotFoundError) as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        context.store.close()


if __name__ == "__main__":
    sys.exit(main())
