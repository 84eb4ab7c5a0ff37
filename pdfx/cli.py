#!/usr/bin/env python3
"""
PDFX CLI - Command Line Interface

Usage:
    pdfx translate input.pdf -l French
    pdfx status <job_id>
    pdfx pages <job_id> [--page 2]
    pdfx history --user alice
    pdfx delete <job_id>

Job records live in PDFX_STORAGE_DIR, so status/pages/history work across
invocations.

© 2025 Sven Kalinowski with small help of Lino Casu
Licensed under the Anti-Capitalist Software License v1.4
"""
import argparse
import asyncio
import logging
import shutil
import sys
import time
from datetime import datetime
from pathlib import Path

from .config import PipelineConfig
from .errors import JobNotFoundError
from .jobs import JobManager
from .logging_config import setup_logging
from .models import JobStatus, PageStatus

DEFAULT_USER = "cli"


def print_progress(percent: int, message: str, width: int = 40):
    """Print progress bar."""
    filled = int(width * percent / 100)
    bar = "#" * filled + "-" * (width - filled)
    try:
        print(f"\r[{bar}] {percent:3d}% - {message:<50}", end="", flush=True)
    except UnicodeEncodeError:
        print(f"\r{percent:3d}% - {message}", end="", flush=True)


def _format_time(ts: float) -> str:
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


def _config_from_args(args) -> PipelineConfig:
    config = PipelineConfig.from_env()
    if getattr(args, "storage", None):
        config.storage_dir = Path(args.storage)
    if getattr(args, "backend", None):
        config.backend = args.backend
    if getattr(args, "model", None):
        config.model = args.model
    return config


# =============================================================================
# TRANSLATE COMMAND
# =============================================================================

async def _translate(args) -> int:
    input_path = Path(args.input).resolve()
    config = _config_from_args(args)

    async with JobManager(config) as manager:
        job = await manager.create_job(args.user, input_path, args.language)
        await manager.submit(job.id)
        print(f"Job: {job.id}")

        try:
            while not job.is_terminal:
                await asyncio.sleep(0.5)
                job = await manager.get(job.id)
                print_progress(job.progress, job.message or job.status.value)
        except asyncio.CancelledError:
            await manager.request_stop(job.id)
            raise
        print()

    if job.status != JobStatus.completed:
        print(f"[{job.status.value.upper()}] {job.error or job.message}")
        return 1

    output = Path(job.output_path)
    if args.output:
        target_dir = Path(args.output)
        target_dir.mkdir(parents=True, exist_ok=True)
        output = Path(shutil.copy2(output, target_dir / f"{input_path.stem}_translated.pdf"))

    failed = [p for p in job.pages if p.status == PageStatus.failed]
    print("[OK] Translation complete!")
    print(f"Output: {output}")
    print(f"Pages: {len(job.pages)} ({len(failed)} failed)")
    return 0


def cmd_translate(args):
    """Translate a single PDF."""
    input_path = Path(args.input)
    if not input_path.exists():
        print(f"[ERROR] File not found: {input_path}")
        return 1

    print(f"Input: {input_path}")
    print(f"Language: {args.language}")
    print()

    start_time = time.time()
    try:
        code = asyncio.run(_translate(args))
    except KeyboardInterrupt:
        print("\n\nInterrupted.")
        return 130
    except Exception as e:
        print(f"\n[ERROR] {e}")
        return 1

    print(f"Time: {time.time() - start_time:.1f}s")
    return code


# =============================================================================
# QUERY COMMANDS
# =============================================================================

def _run_query(args, query) -> int:
    async def _main():
        manager = JobManager(_config_from_args(args))
        return await query(manager)

    try:
        return asyncio.run(_main())
    except JobNotFoundError as e:
        print(f"[ERROR] {e.args[0]}")
        return 1


def cmd_status(args):
    """Show the status of a job."""
    async def query(manager: JobManager) -> int:
        s = await manager.status(args.job_id)
        print(f"Job:      {s.id}")
        print(f"File:     {s.filename}")
        print(f"Language: {s.target_language}")
        print(f"Status:   {s.status.value} ({s.progress}%)")
        print(f"Pages:    {s.current_page}/{s.total_pages}")
        if s.message:
            print(f"Message:  {s.message}")
        if s.output_path:
            print(f"Output:   {s.output_path}")
        return 0

    return _run_query(args, query)


def cmd_pages(args):
    """Show original and translated text side by side."""
    async def query(manager: JobManager) -> int:
        if args.page:
            views = [await manager.page(args.job_id, args.page)]
        else:
            views = await manager.pages(args.job_id)
        for view in views:
            print(f"===== Page {view.page_number} =====")
            print("--- original ---")
            print(view.original_text)
            print("--- translated ---")
            print(view.translated_text)
            print()
        return 0

    return _run_query(args, query)


def cmd_history(args):
    """List the jobs of a user, newest first."""
    async def query(manager: JobManager) -> int:
        items, total = await manager.history(args.user, args.page, args.size)
        print(f"{total} jobs for user {args.user}")
        for s in items:
            print(f"  {s.id}  {_format_time(s.created_at)}  {s.status.value:<10} {s.progress:3d}%  {s.filename}")
        return 0

    return _run_query(args, query)


def cmd_delete(args):
    """Delete a job with its files."""
    async def query(manager: JobManager) -> int:
        await manager.delete(args.job_id)
        print(f"Deleted {args.job_id}")
        return 0

    return _run_query(args, query)


def main():
    parser = argparse.ArgumentParser(
        description="PDFX - PDF translation pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pdfx translate paper.pdf -l French
  pdfx status 3f2b...
  pdfx history --user alice
"""
    )
    parser.add_argument("--storage", help="Storage directory (default: PDFX_STORAGE_DIR)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-dir", help="Also write a log file into this directory")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    p_translate = subparsers.add_parser("translate", help="Translate a single PDF")
    p_translate.add_argument("input", help="Input PDF file")
    p_translate.add_argument("-l", "--language", default="English", help="Target language")
    p_translate.add_argument("-o", "--output", help="Copy the result into this directory")
    p_translate.add_argument("-b", "--backend", choices=["openai", "ollama"], help="Translation backend")
    p_translate.add_argument("-m", "--model", help="Model name")
    p_translate.add_argument("-u", "--user", default=DEFAULT_USER, help="Owner of the job")
    p_translate.set_defaults(func=cmd_translate)

    p_status = subparsers.add_parser("status", help="Show job status")
    p_status.add_argument("job_id")
    p_status.set_defaults(func=cmd_status)

    p_pages = subparsers.add_parser("pages", help="Show page texts of a job")
    p_pages.add_argument("job_id")
    p_pages.add_argument("-p", "--page", type=int, help="Only this page")
    p_pages.set_defaults(func=cmd_pages)

    p_history = subparsers.add_parser("history", help="List jobs of a user")
    p_history.add_argument("-u", "--user", default=DEFAULT_USER)
    p_history.add_argument("--page", type=int, default=1)
    p_history.add_argument("--size", type=int, default=20)
    p_history.set_defaults(func=cmd_history)

    p_delete = subparsers.add_parser("delete", help="Delete a job and its files")
    p_delete.add_argument("job_id")
    p_delete.set_defaults(func=cmd_delete)

    args = parser.parse_args()

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        log_dir=Path(args.log_dir) if args.log_dir else None,
    )

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
