"""CLI for the Athena RAG core."""

import argparse
import json
import os
import sys

# Set USER_AGENT to suppress langchain warning
if not os.environ.get("USER_AGENT"):
    os.environ["USER_AGENT"] = "athena-rag/1.0.0"

from .errors import AthenaError


def _create_athena(args: argparse.Namespace):
    from .athena import Athena
    from .config import AthenaConfig

    config = AthenaConfig.from_env(
        db_path=args.db,
        backend=args.backend,
        remote_url=args.remote_url,
    )
    return Athena(config)


def context(args: argparse.Namespace) -> None:
    """Print the context assembled for a question."""
    from .loaders import load_sources

    athena = _create_athena(args)
    try:
        docs = load_sources(args.sources, max_documents=athena.config.max_documents)
        if not docs:
            print("Error: no text could be extracted from the given sources", file=sys.stderr)
            sys.exit(1)
        if args.full_text_on_error:
            print(athena.build_context_or_full_text(args.question, docs))
        else:
            print(athena.build_context(args.question, docs))
    finally:
        athena.close()


def index(args: argparse.Namespace) -> None:
    """Index sources ahead of any question."""
    from .loaders import load_sources

    athena = _create_athena(args)
    try:
        docs = load_sources(args.sources, max_documents=athena.config.max_documents)
        print(json.dumps(athena.index(docs), indent=2))
    finally:
        athena.close()


def stats(args: argparse.Namespace) -> None:
    """Show store statistics."""
    athena = _create_athena(args)
    try:
        print(json.dumps(athena.get_stats(), indent=2))
    finally:
        athena.close()


def serve(args: argparse.Namespace) -> None:
    """Start the remote vector store server."""
    try:
        import uvicorn
        from .api import create_app
    except ImportError:
        print("Error: API dependencies not installed.")
        print("  Run: pip install 'athena-rag[api]'")
        sys.exit(1)

    app = create_app(
        db_path=args.vector_db,
        index_path=args.vector_index,
        api_key=os.environ.get("ATHENA_REMOTE_API_KEY") or None,
    )

    print(f"Starting Athena vector store on http://{args.host}:{args.port}")
    print(f"  Database: {args.vector_db}")
    print(f"  Index: {args.vector_index}")
    print(f"  Docs: http://{args.host}:{args.port}/docs\n")

    uvicorn.run(app, host=args.host, port=args.port)


def main() -> None:
    """Main CLI entry point."""
    from .logger import configure_logging

    parser = argparse.ArgumentParser(
        prog="athena",
        description="Athena - question answering context over course documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  athena context "When is the midterm?" syllabus.pdf notes.txt
  athena index syllabus.pdf https://lms.example.edu/content/week1.pdf
  athena stats
  athena serve --port 8000

Environment variables:
  ATHENA_EMBEDDING_PROVIDER   openai (default), http, huggingface, ollama
  ATHENA_API_KEY              Embedding credential (or OPENAI_API_KEY / HF_TOKEN)
  ATHENA_BACKEND              local (default) or remote
  ATHENA_REMOTE_URL           Remote vector store base URL
  ATHENA_REMOTE_API_KEY       Remote vector store key (x-api-key)
"""
    )

    parser.add_argument(
        "--version", action="version", version="%(prog)s 1.0.0"
    )
    parser.add_argument(
        "--db", type=str, help="Local store path (default: athena.db)"
    )
    parser.add_argument(
        "--backend", choices=("local", "remote"), help="Vector store backend"
    )
    parser.add_argument(
        "--remote-url", type=str, help="Remote vector store base URL"
    )
    parser.add_argument(
        "--log-level", type=str, default="WARNING", help="Logging level (default: WARNING)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Context command
    context_parser = subparsers.add_parser("context", help="Print the context for a question")
    context_parser.add_argument("question", type=str)
    context_parser.add_argument("sources", nargs="+", help="Files or URLs")
    context_parser.add_argument(
        "--full-text-on-error", action="store_true",
        help="Use the documents' full text if retrieval fails",
    )
    context_parser.set_defaults(func=context)

    # Index command
    index_parser = subparsers.add_parser("index", help="Index documents")
    index_parser.add_argument("sources", nargs="+", help="Files or URLs")
    index_parser.set_defaults(func=index)

    # Stats command
    stats_parser = subparsers.add_parser("stats", help="Show store statistics")
    stats_parser.set_defaults(func=stats)

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the remote vector store server")
    serve_parser.add_argument(
        "--host", type=str, default="127.0.0.1", help="Host to bind (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", type=int, default=8000, help="Port to bind (default: 8000)"
    )
    serve_parser.add_argument(
        "--vector-db", type=str, default="athena_vectors.db", help="Chunk metadata database"
    )
    serve_parser.add_argument(
        "--vector-index", type=str, default="athena_vectors.usearch", help="USearch index file"
    )
    serve_parser.set_defaults(func=serve)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    configure_logging(args.log_level)

    try:
        args.func(args)
    except AthenaError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        if e.detail:
            print(f"  {e.detail}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
