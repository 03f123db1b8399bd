#!/usr/bin/env python3
"""Book Importer CLI - CSV to library store batch job."""
import argparse
import sys
import json
from tabulate import tabulate
from bookimport.config import Config
from bookimport.database import BookStore, MongoBookStore
from bookimport.steps import GenreOnMissing, build_import_job
import logging

logger = logging.getLogger(__name__)


def setup_logging(level: str):
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    )


def setup_store(config: Config) -> BookStore:
    """Initialize the configured store."""
    if config.STORE_BACKEND == "postgres":
        from bookimport.pg_database import PostgresBookStore
        store = PostgresBookStore(config.DATABASE_URL)
    elif config.STORE_BACKEND == "mongo":
        store = MongoBookStore(config.MONGO_URI, config.MONGO_DB)
    else:
        raise ValueError(f"Unknown STORE_BACKEND: {config.STORE_BACKEND}")
    store.init_schema()
    return store


def run_job(args, config: Config) -> int:
    """Run the import job and print a per-step summary."""
    if args.input:
        config.INPUT_FILE = args.input
    if args.chunk_size is not None:
        config.CHUNK_SIZE = args.chunk_size
    if args.workers is not None:
        config.MAX_WORKERS = args.workers
    if args.genre_on_missing:
        config.GENRE_ON_MISSING = args.genre_on_missing
    if args.skip_header:
        config.SKIP_HEADER = True

    with setup_store(config) as store:
        if args.clean:
            deleted = store.clear()
            logger.info(f"Store cleared before import: {deleted}")

        job = build_import_job(config, store)
        execution = job.run()

        rows = [
            [
                step.step_name,
                step.status.value,
                step.read_count,
                step.filter_count,
                step.write_count,
                step.commit_count,
            ]
            for step in execution.step_executions
        ]
        print("\n" + tabulate(
            rows,
            headers=["Step", "Status", "Read", "Filtered", "Written", "Chunks"],
            tablefmt="grid"
        ))
        print(f"\nJob {execution.job_name} (run {execution.run_id}): {execution.status.value}")

        if not execution.succeeded:
            print(f"❌ {type(execution.failure).__name__}: {execution.failure}")
            return 1
        return 0


def display_books(books, format_type: str):
    """Display books in specified format."""
    if format_type == "table":
        headers = ["Title", "Authors", "Published", "Age", "Genre"]
        rows = [
            [
                book.title[:50] + "..." if len(book.title) > 50 else book.title,
                book.authors_str[:40] + "..." if len(book.authors_str) > 40 else book.authors_str,
                book.published_date.isoformat(),
                book.age if book.age is not None else "N/A",
                book.genre.name,
            ]
            for book in books
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        books_dict = [
            {
                "id": book.id,
                "title": book.title,
                "published_date": book.published_date.isoformat(),
                "age": book.age,
                "authors": sorted(author.full_name for author in book.authors),
                "genre": book.genre.name,
            }
            for book in books
        ]
        print(json.dumps(books_dict, indent=2))


def list_books(args, config: Config) -> int:
    """List stored books."""
    with setup_store(config) as store:
        books = store.find_books(limit=args.limit)
        display_books(books, args.format)
    return 0


def show_stats(args, config: Config) -> int:
    """Show store statistics."""
    with setup_store(config) as store:
        stats = store.get_stats()

    print("\n" + "=" * 50)
    print("STORE STATISTICS")
    print("=" * 50)
    print(f"Authors:  {stats['authors']}")
    print(f"Genres:   {stats['genres']}")
    print(f"Books:    {stats['books']}")
    print(f"Comments: {stats['comments']}")
    print("=" * 50 + "\n")
    return 0


def clean_store(args, config: Config) -> int:
    """Wipe all collections."""
    with setup_store(config) as store:
        deleted = store.clear()
    print(f"✅ Removed {sum(deleted.values())} records: {deleted}")
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Book Importer - load a semicolon CSV of books into the library store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import data.csv with defaults
  %(prog)s run

  # Wipe the store first, then import with 4 processing threads
  %(prog)s run --input data.csv --clean --workers 4

  # Create genres that are missing when books are imported
  %(prog)s run --genre-on-missing save

  # Show what was imported
  %(prog)s list --format json
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the import job")
    run_parser.add_argument("--input", help="CSV file (default: INPUT_FILE or data.csv)")
    run_parser.add_argument("--chunk-size", type=int, help="Items per chunk (default: 3)")
    run_parser.add_argument("--workers", type=int, help="Threads processing a chunk (default: 1)")
    run_parser.add_argument("--genre-on-missing", choices=[p.value for p in GenreOnMissing],
                            help="Book stage policy for unknown genres (default: fail)")
    run_parser.add_argument("--skip-header", action="store_true", help="First CSV line is a header")
    run_parser.add_argument("--clean", action="store_true", help="Wipe the store before importing")

    # List command
    list_parser = subparsers.add_parser("list", help="List stored books")
    list_parser.add_argument("--limit", type=int, help="Limit results")
    list_parser.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    # Stats command
    subparsers.add_parser("stats", help="Show store statistics")

    # Clean command
    subparsers.add_parser("clean", help="Wipe comments, books, authors and genres")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config()
    setup_logging(config.LOG_LEVEL)

    commands = {
        "run": run_job,
        "list": list_books,
        "stats": show_stats,
        "clean": clean_store,
    }

    try:
        sys.exit(commands[args.command](args, config))
    except KeyboardInterrupt:
        logger.info("\n⚠️  Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"❌ Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
