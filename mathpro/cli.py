# FILE: cli.py
# LOCATION: mathpro/cli.py

"""Command-line front end: sign in, solve a problem, optionally explain it."""

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path
from typing import Optional

import httpx

from .client import AuthenticatedRequestClient
from .config import Settings
from .logging_setup import configure_logging
from .orchestrator import FlowResult, Outcome, RequestOrchestrator, UploadedFile
from .session import AuthSession, StaticTokenUser, sign_in_with_password


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mathpro-solve",
        description="Solve a math problem step by step through the MathPRO gateway.",
    )
    parser.add_argument("problem", nargs="?", help="problem text, e.g. \"2x + 3 = 7\"")
    parser.add_argument("--file", type=Path, help="image or PDF containing the problem")
    parser.add_argument("--language", default="English", help="output language (default: English)")
    parser.add_argument("--explain", action="store_true", help="also request a simplified explanation")
    parser.add_argument("--endpoint", help="gateway URL (default: MATHPRO_ENDPOINT)")
    auth = parser.add_argument_group("authentication")
    auth.add_argument("--token", help="an ID token obtained elsewhere")
    auth.add_argument("--email")
    auth.add_argument("--password")
    return parser


def load_file(path: Path) -> UploadedFile:
    mime_type, _ = mimetypes.guess_type(path.name)
    return UploadedFile(data=path.read_bytes(), mime_type=mime_type or "application/octet-stream", name=path.name)


async def _watch_progress(orchestrator: RequestOrchestrator) -> None:
    last = None
    while True:
        status = orchestrator.progress.status
        if status != last:
            print(f"  {status}", file=sys.stderr)
            last = status
        await asyncio.sleep(0.25)


async def _run_flow(orchestrator: RequestOrchestrator, flow) -> FlowResult:
    watcher = asyncio.create_task(_watch_progress(orchestrator))
    try:
        return await flow
    finally:
        watcher.cancel()
        print(f"  {orchestrator.progress.status}", file=sys.stderr)


async def run(args: argparse.Namespace, settings: Settings) -> int:
    session = AuthSession()
    session.subscribe(
        lambda user: print(
            f"Signed in as {user.display_name or user.uid}" if user else "Not signed in",
            file=sys.stderr,
        )
    )

    async with httpx.AsyncClient(timeout=60.0) as http:
        user: Optional[object] = None
        if args.token:
            user = StaticTokenUser(uid="cli", token=args.token)
        elif args.email and args.password:
            user = await sign_in_with_password(http, settings.firebase_api_key, args.email, args.password)
        session.mark_ready(user)

        orchestrator = RequestOrchestrator(
            AuthenticatedRequestClient(http),
            session,
            args.endpoint or settings.endpoint,
            max_retries=settings.max_retries,
        )

        upload = load_file(args.file) if args.file else None
        result = await _run_flow(orchestrator, orchestrator.solve(args.problem, upload, args.language))
        if result.outcome is not Outcome.SOLVED:
            print(result.error, file=sys.stderr)
            return 1
        print(result.text)

        if args.explain:
            result = await _run_flow(orchestrator, orchestrator.explain(args.language))
            if result.outcome is not Outcome.EXPLAINED:
                print(result.error, file=sys.stderr)
                return 1
            print()
            print(result.text)
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    try:
        return asyncio.run(run(args, settings))
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
