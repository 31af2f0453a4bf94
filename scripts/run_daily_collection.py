"""
CLI harness that loads today's cached lookbook or generates a fresh collection.

Usage:
    python scripts/run_daily_collection.py --store lookbook_store.yaml

Environment variables:
    OPENAI_API_KEY / LITELLM_API_KEY  - credential for the identity model
    REPLICATE_API_TOKEN               - credential for the image model
    LOOKBOOK_TARGET_COUNT             - profiles per day (default 20)
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from lookbook import (
    BatchSettings,
    CollectionStore,
    IdentityGenerator,
    ReplicateImageSynthesizer,
    StageOrchestrator,
    YamlFileBackend,
)
from lookbook.storage import BatchProgress


class ProgressTracker:
    """
    Renders batch progress snapshots as a tqdm bar.
    """

    def __init__(self) -> None:
        self._bar: tqdm | None = None

    def __call__(self, snapshot: BatchProgress) -> None:
        if self._bar is None:
            self._bar = tqdm(total=snapshot.total, desc="Curating", unit="model")

        if snapshot.succeeded:
            self._bar.set_description(f"Curating {snapshot.identity.name[:30]}")
        else:
            tqdm.write(f"  Skipped {snapshot.identity.name}: {snapshot.error}")
        self._bar.update(1)
        self._bar.set_postfix(progress=f"{snapshot.percent}%")

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Load or regenerate the daily lookbook collection.")
    parser.add_argument(
        "--store",
        default=os.getenv("LOOKBOOK_STORE_PATH") or "lookbook_store.yaml",
        help="YAML file holding the cached collection.",
    )
    parser.add_argument(
        "--count",
        type=int,
        default=None,
        help="Override the number of profiles to generate.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Regenerate even when today's collection is cached.",
    )
    parser.add_argument(
        "--identity-model",
        default=None,
        help="Override the text model used for persona generation.",
    )
    parser.add_argument(
        "--image-model",
        default=None,
        help="Override the Replicate image model identifier.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Python logging level (default: WARNING).",
    )
    return parser.parse_args(argv)


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = BatchSettings.from_env()
    if args.count is not None:
        settings = replace(settings, target_count=args.count)

    backend = YamlFileBackend(args.store)
    store = CollectionStore(backend, settings=settings)

    cached = store.load()
    if cached and not args.force:
        tqdm.write(f"Serving {len(cached)} cached profiles for {store.today_stamp()}.")
        _print_collection(store)
        return 0

    orchestrator = StageOrchestrator(
        ReplicateImageSynthesizer(model_identifier=args.image_model),
        max_attempts=settings.max_attempts,
    )
    identity_generator = IdentityGenerator(
        model=args.identity_model,
        max_attempts=settings.max_attempts,
    )
    store = CollectionStore(
        backend,
        identity_generator=identity_generator,
        orchestrator=orchestrator,
        settings=settings,
    )

    tracker = ProgressTracker()
    try:
        store.run_daily_batch(progress_callback=tracker)
    finally:
        tracker.close()

    tqdm.write(
        f"Collection ready: {len(store.profiles)}/{settings.target_count} profiles "
        f"saved to {backend.path}."
    )
    _print_collection(store)
    return 0


def _print_collection(store: CollectionStore) -> None:
    for index, profile in enumerate(store.profiles, start=1):
        stages = ", ".join(stage.label for stage in sorted(profile.images_by_stage))
        tqdm.write(f"  {index:>2}. {profile.name} [{stages}]")


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
