# =============================================================================
# src/cli/commands.py: Operator CLI (queue worker, enqueue, stats, query)
# =============================================================================
#
# Subcommands:
#
#   worker:        run the queue worker in the foreground until Ctrl-C
#                  (use with QUEUE_WORKER_ENABLED=false on the web app)
#   enqueue:       register/enqueue a material and optionally process now
#   stats:         queue counts per status + course statistics
#   retry-failed:  re-queue failed jobs (optionally resetting attempts)
#   query:         ask a RAG question from the terminal
#
# Every command builds the same object graph as the web app via
# src.main.build_components, so provider selection and settings match.
# =============================================================================

"""Operator CLI for Lectern.

Usage::

    python -m src.cli worker
    python -m src.cli enqueue MATERIAL_ID --url https://host/doc.pdf \\
        --title "Week 1 notes" --course CS101 --now
    python -m src.cli stats --course CS101
    python -m src.cli retry-failed --reset-attempts
    python -m src.cli query "What is a binary heap?" --course CS101
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from typing import Any

from src.config.settings import Settings
from src.utils.errors import LecternError


async def _with_components(app_settings: Settings, handler, *args: Any) -> int:  # noqa: ANN001
    # Deferred: importing src.main configures logging and builds the app.
    from src.main import build_components, close_components, initialize_components

    components = build_components(app_settings)
    try:
        await initialize_components(components)
        return await handler(components, *args)
    finally:
        await close_components(components)


async def _handle_worker(components: dict[str, Any], args: argparse.Namespace) -> int:
    worker = components["queue_worker"]
    if args.poll_interval is not None:
        worker.set_poll_interval(args.poll_interval)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops; Ctrl-C still raises KeyboardInterrupt.
            pass

    worker.start()
    print(f"Queue worker running (poll every {worker.get_status()['poll_interval']:g}s). Ctrl-C to stop.")
    await stop.wait()
    await worker.stop()
    print("Queue worker stopped.")
    return 0


async def _handle_enqueue(components: dict[str, Any], args: argparse.Namespace) -> int:
    queue = components["queue_manager"]
    job_id = await queue.add_job(
        args.material_id,
        file_url=args.url,
        title=args.title,
        course_id=args.course,
    )
    print(f"Enqueued material {args.material_id} as job {job_id}")

    if args.now:
        processed = await queue.process_all()
        job = await queue.get_job_status(job_id)
        print(f"Processed {processed} job(s); job {job_id} is {job.status.value if job else 'missing'}")
        if job is not None and job.error:
            print(f"  last error: {job.error}")
    return 0


async def _handle_stats(components: dict[str, Any], args: argparse.Namespace) -> int:
    queue_stats = await components["queue_manager"].get_queue_stats()
    course_stats = await components["rag_service"].get_course_stats(args.course)

    if args.json:
        print(json.dumps({
            "queue": queue_stats.model_dump(),
            "course": course_stats.model_dump(),
        }, indent=2))
        return 0

    print("\n=== Processing Queue ===")
    print(f"  Pending:    {queue_stats.pending:,}")
    print(f"  Processing: {queue_stats.processing:,}")
    print(f"  Completed:  {queue_stats.completed:,}")
    print(f"  Failed:     {queue_stats.failed:,}")
    print(f"  Total:      {queue_stats.total:,}")

    scope = f"course {args.course}" if args.course else "all courses"
    print(f"\n=== Materials ({scope}) ===")
    print(f"  Total materials:     {course_stats.total_materials:,}")
    print(f"  Processed materials: {course_stats.processed_materials:,}")
    print(f"  Total chunks:        {course_stats.total_chunks:,}")
    print(f"  Avg chunks/material: {course_stats.average_chunks_per_material:.1f}")
    print()
    return 0


async def _handle_retry_failed(components: dict[str, Any], args: argparse.Namespace) -> int:
    requeued = await components["queue_manager"].retry_failed(reset_attempts=args.reset_attempts)
    print(f"Re-queued {requeued} failed job(s)")
    return 0


async def _handle_query(components: dict[str, Any], args: argparse.Namespace) -> int:
    response = await components["rag_service"].query_with_history(
        args.question,
        course_id=args.course,
    )
    print(response.answer)
    if response.source_documents:
        print("\nSources:")
        for source in response.source_documents:
            page = f", p. {source.page_number}" if source.page_number is not None else ""
            print(f"  - {source.title}{page} (score {source.relevance_score:.3f})")
    if response.follow_up_questions:
        print("\nYou could also ask:")
        for question in response.follow_up_questions:
            print(f"  * {question}")
    return 0


_HANDLERS = {
    "worker": _handle_worker,
    "enqueue": _handle_enqueue,
    "stats": _handle_stats,
    "retry-failed": _handle_retry_failed,
    "query": _handle_query,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Lectern operator tools: queue worker, enqueueing, statistics and queries.",
    )
    subparsers = parser.add_subparsers(dest="command")

    worker_parser = subparsers.add_parser("worker", help="Run the processing queue worker")
    worker_parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between polls (overrides QUEUE_POLL_INTERVAL)",
    )

    enqueue_parser = subparsers.add_parser("enqueue", help="Enqueue a material for processing")
    enqueue_parser.add_argument("material_id", help="Material id")
    enqueue_parser.add_argument("--url", default=None, help="PDF URL (registers a new material)")
    enqueue_parser.add_argument("--title", default=None, help="Material title")
    enqueue_parser.add_argument("--course", default=None, help="Course id")
    enqueue_parser.add_argument("--now", action="store_true", help="Process due jobs immediately")

    stats_parser = subparsers.add_parser("stats", help="Show queue and course statistics")
    stats_parser.add_argument("--course", default=None, help="Limit course statistics to one course")
    stats_parser.add_argument("--json", action="store_true", help="Print JSON")

    retry_parser = subparsers.add_parser("retry-failed", help="Re-queue failed jobs")
    retry_parser.add_argument(
        "--reset-attempts",
        action="store_true",
        help="Also re-queue jobs that used every attempt, starting again from zero",
    )

    query_parser = subparsers.add_parser("query", help="Ask a question about course materials")
    query_parser.add_argument("question", help="The question")
    query_parser.add_argument("--course", default=None, help="Course id to search")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse the subcommand and run its handler."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    try:
        exit_code = asyncio.run(_with_components(app_settings, _HANDLERS[args.command], args))
    except LecternError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    except KeyboardInterrupt:
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
