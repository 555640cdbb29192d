#!/usr/bin/env python3
"""
MindWell voice journal from the command line.

Records from the default microphone, uploads the take, follows processing
and prints the saved entry. With ``--text`` the entry is typed instead and
saved directly.

Usage:
    python scripts/record_journal.py                    # Record until Enter
    python scripts/record_journal.py --seconds 20 --mood calm
    python scripts/record_journal.py --text "Feeling better today" --mood calm

Server URL and token come from ``API_BASE_URL`` / ``API_TOKEN`` (or .env).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from mindwell.client.api_client import APIError, JournalAPIClient
from mindwell.client.flow import VoiceJournalFlow
from mindwell.client.uploader import UploadCoordinator
from mindwell.core.config import get_settings
from mindwell.core.exceptions import MindWellError, RecordingTooShortError
from mindwell.core.models import EntryResponse, JobStatusResponse
from mindwell.services.audio.capture import AudioCapture

logger = logging.getLogger(__name__)


def _print_progress(status: JobStatusResponse) -> None:
    print(f"  {status.progress:>3}%  {status.status}")


def _print_entry(entry: EntryResponse) -> None:
    print()
    print(f"Entry #{entry.id}: {entry.title or '(untitled)'}")
    print(f"  mood:     {entry.mood} {entry.color_hex or ''}")
    if entry.category:
        print(f"  category: {entry.category}")
    if entry.tags:
        print(f"  tags:     {', '.join(entry.tags)}")
    print()
    print(entry.content)


async def _record(flow: VoiceJournalFlow, seconds: float | None, mood: str | None) -> EntryResponse | None:
    await flow.start_recording()
    if seconds:
        print(f"Recording for {seconds:.0f}s...")
        await asyncio.sleep(seconds)
    else:
        await asyncio.to_thread(input, "Recording... press Enter to stop. ")

    receipt = await flow.stop_and_submit(mood_hint=mood)
    print(f"Submitted as job {receipt.job_id} ({receipt.attempts} attempt(s)); processing:")
    return await flow.await_entry()


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    client = JournalAPIClient(settings.api_base_url, token=settings.api_token or None)
    capture = AudioCapture(
        sample_rate=settings.capture_sample_rate,
        channels=settings.capture_channels,
        min_seconds=settings.capture_min_seconds,
        min_bytes=settings.capture_min_bytes,
    )
    uploader = UploadCoordinator(
        client,
        max_attempts=settings.upload_max_attempts,
        backoff_base=settings.upload_backoff_seconds,
        backoff_max=settings.upload_backoff_max_seconds,
        deadline=settings.upload_deadline_seconds,
    )
    flow = VoiceJournalFlow(
        capture,
        uploader,
        client,
        poll_interval=settings.poll_interval_seconds,
        max_not_found=settings.poll_max_not_found,
        max_transient_errors=settings.poll_max_transient_errors,
        on_progress=_print_progress,
    )

    try:
        if args.text:
            entry = await flow.create_text_entry(args.text, mood=args.mood, title=args.title)
        else:
            entry = await _record(flow, args.seconds, args.mood)
    except RecordingTooShortError as exc:
        print(f"  WARN  {exc.detail}", file=sys.stderr)
        return 2
    except MindWellError as exc:
        print(f"  ERROR {exc.code}: {exc.detail}", file=sys.stderr)
        return 1
    except APIError as exc:
        print(f"  ERROR {exc.category}: {exc.message}", file=sys.stderr)
        return 1
    finally:
        flow.abandon()
        await client.aclose()

    if entry is None:
        return 1
    _print_entry(entry)
    return 0


def main() -> int:
    """Parse arguments and run one journal entry through the flow."""
    parser = argparse.ArgumentParser(description="Record (or type) a MindWell journal entry")
    parser.add_argument("--seconds", type=float, default=None, help="Record for a fixed duration")
    parser.add_argument("--mood", default=None, help="Self-reported mood (e.g. calm, happy, anxious)")
    parser.add_argument("--text", default=None, help="Save a typed entry instead of recording")
    parser.add_argument("--title", default=None, help="Title for a typed entry")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
