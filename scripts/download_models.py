#!/usr/bin/env python3
"""
MindWell Whisper model downloader.

Fetches the faster-whisper model used by the transcription stage so the
journal server can start offline. Defaults to ``WHISPER_MODEL`` from the
settings.

Usage:
    python scripts/download_models.py                 # configured model
    python scripts/download_models.py --model small --device cuda
    python scripts/download_models.py --list
"""

import argparse
import sys
from pathlib import Path

from faster_whisper import WhisperModel

from mindwell.core.config import get_settings

# Approximate download sizes
MODELS = {
    "tiny": ("39 MB", "Fastest; rough transcripts"),
    "base": ("142 MB", "Default; fine for short journal takes"),
    "small": ("466 MB", "Better accuracy on accented speech"),
    "medium": ("1.5 GB", "High accuracy, slower"),
    "large-v3": ("3.1 GB", "Best accuracy; GPU recommended"),
}

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "huggingface" / "hub"


def print_models(configured: str) -> None:
    print("\nWhisper models:")
    print("-" * 60)
    for name, (size, description) in MODELS.items():
        marker = "*" if name == configured else " "
        print(f" {marker} {name:10} {size:>8}  {description}")
    print("-" * 60)
    print(f"* configured (WHISPER_MODEL={configured})\n")


def download_model(model_name: str, cache_dir: Path, device: str, compute_type: str) -> bool:
    """Load *model_name* once so faster-whisper caches its weights.

    Returns:
        True if the model is now available locally.
    """
    if model_name not in MODELS:
        print(f"Unknown model '{model_name}'. Choose one of: {', '.join(MODELS)}", file=sys.stderr)
        return False

    size, _ = MODELS[model_name]
    print(f"Downloading '{model_name}' ({size}) to {cache_dir} [{device}/{compute_type}]")
    cache_dir.mkdir(parents=True, exist_ok=True)
    try:
        WhisperModel(model_name, device=device, compute_type=compute_type, download_root=str(cache_dir))
    except Exception as exc:
        print(f"Download failed: {exc}", file=sys.stderr)
        return False

    print(f"'{model_name}' is ready.")
    return True


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Download the Whisper model used by MindWell")
    parser.add_argument("--model", default=settings.whisper_model, help="Model size to fetch")
    parser.add_argument("--cache-dir", type=Path, default=DEFAULT_CACHE_DIR, help="Download directory")
    parser.add_argument("--device", default="cpu", choices=["cpu", "cuda"])
    parser.add_argument("--compute-type", default="int8", choices=["int8", "float16", "float32"])
    parser.add_argument("--list", action="store_true", help="List models and exit")
    args = parser.parse_args()

    if args.list:
        print_models(settings.whisper_model)
        return 0

    ok = download_model(args.model, args.cache_dir, args.device, args.compute_type)
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
