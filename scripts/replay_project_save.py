"""
Replay project saves against a configured remote store.

Runs two scenarios through the full service path and prints the outcome of
each: a well-formed project that should sync, and a project whose creator
id is not a valid user reference, which a remote with creator validation
rejects (the local save still succeeds).

Usage:
    python scripts/replay_project_save.py
    python scripts/replay_project_save.py --config ./projectforge.yaml
    python scripts/replay_project_save.py --creator-id <user-uuid> --local-path ./replay.json

For Cosmos, set environment variables (or use --config):
    PROJECTFORGE_COSMOS_ENDPOINT - Cosmos DB endpoint URL
    PROJECTFORGE_COSMOS_DATABASE - Database name (use a test DB, NOT production!)
    PROJECTFORGE_COSMOS_AUTH_METHOD - key / default_credential / ...

WARNING: This writes real records. Always use a TEST database.
"""

import argparse
import asyncio
import logging
import uuid
from pathlib import Path

from projectforge_sync import (
    Notification,
    ProjectService,
    ProjectSyncCoordinator,
    SyncConfig,
    configure_structured_logging,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_scenarios(creator_id: str) -> list[tuple[str, dict]]:
    return [
        (
            "successful save",
            {
                "title": "Replay Success Project",
                "description": "Replayed save that should reach the remote store",
                "category": "Technology",
                "creatorId": creator_id,
                "fundingGoal": 1000,
                "status": "active",
                "tags": ["replay"],
            },
        ),
        (
            "rejected creator",
            {
                "title": "Replay Rejected Creator",
                "description": "Replayed save with an invalid creator reference",
                "category": "Technology",
                "creatorId": "bad-uuid",
                "fundingGoal": 1000,
                "status": "active",
            },
        ),
    ]


def print_notification(notification: Notification) -> None:
    print(f"  [{notification.level.value}] {notification.message}")
    if notification.detail:
        print(f"      {notification.detail}")


async def replay(config: SyncConfig, creator_id: str) -> int:
    """Run every scenario and return the number of projects that synced."""
    coordinator = ProjectSyncCoordinator.from_config(config)
    service = ProjectService(coordinator, notifier=print_notification)

    if coordinator.remote is None:
        logger.warning("No remote configured; saves will stay local")
    else:
        report = await coordinator.remote.verify_connection()
        print(f"Connected: {report.connected}, schema valid: {report.schema_valid}")
        for error in report.errors:
            print(f"  {error}")

    synced = 0
    try:
        for name, fields in build_scenarios(creator_id):
            print(f"\n--- {name} ---")
            result = await service.create_project(fields)
            project_id = result.project.id if result.project else None
            print(f"  success={result.success} project_id={project_id} remote_id={result.remote_id}")
            if result.error:
                print(f"  error={result.error}")
            if project_id:
                print(f"  sync state: {coordinator.get_sync_state(project_id).value}")
            if result.success and not result.error:
                synced += 1
    finally:
        await coordinator.close()

    return synced


async def main():
    parser = argparse.ArgumentParser(
        description="Replay project saves against the configured remote store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Use PROJECTFORGE_* environment variables
  python scripts/replay_project_save.py

  # Use a YAML settings file
  python scripts/replay_project_save.py --config ./projectforge.yaml
        """,
    )
    parser.add_argument("--config", type=Path, help="YAML settings file with a sync: section")
    parser.add_argument(
        "--creator-id",
        default=str(uuid.uuid4()),
        help="Creator id for the successful scenario (default: random uuid)",
    )
    parser.add_argument("--local-path", type=Path, help="JSON file for the local cache")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")
    args = parser.parse_args()

    if args.json_logs:
        configure_structured_logging(logging.INFO)

    config = SyncConfig.from_file(args.config) if args.config else SyncConfig.from_environment()
    if args.local_path:
        config.local_path = str(args.local_path)

    synced = await replay(config, args.creator_id)

    print("\n" + "=" * 70)
    print("REPLAY COMPLETE")
    print("=" * 70)
    print(f"Synced: {synced} of {len(build_scenarios(args.creator_id))}")


if __name__ == "__main__":
    asyncio.run(main())
