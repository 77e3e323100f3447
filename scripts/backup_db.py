import argparse
import asyncio

from imagine_stories.backend.backups import BackupCoordinator
from imagine_stories.backend.storage.artifacts import build_artifact_store
from imagine_stories.common import config
from imagine_stories.common.db import Database
from imagine_stories.common.errors import StoryError


async def _run(args: argparse.Namespace) -> None:
    db = Database(args.db)
    coordinator = BackupCoordinator(db, build_artifact_store(args.store))
    try:
        if args.command == "create":
            name = await coordinator.create_backup()
            print(f"Database backed up to {name}")
        elif args.command == "list":
            backups = await coordinator.list_backups()
            if not backups:
                print("No backups found.")
            for b in backups:
                print(f"{b.created_at.isoformat()}  {b.name}")
        elif args.command == "restore":
            if args.name:
                name = await coordinator.restore_named(args.name)
            else:
                name = await coordinator.restore_latest_backup()
            print(f"Database restored from {name}")
    finally:
        db.close()


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Back up or restore the story database via the artifact store."
    )
    parser.add_argument("--db", type=str, default=config.DATABASE_PATH, help="Path to the SQLite file")
    parser.add_argument(
        "--store",
        type=str,
        default=config.ARTIFACT_STORE,
        choices=["local", "supabase", "gcs"],
        help="Artifact store backend",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("create", help="Upload a snapshot of the database")
    sub.add_parser("list", help="List backups, newest first")
    restore = sub.add_parser("restore", help="Replace the database with a backup")
    restore.add_argument("--name", type=str, help="Backup object name (default: latest)")
    args = parser.parse_args()

    config.configure_logging()
    try:
        asyncio.run(_run(args))
    except StoryError as exc:
        print(f"Error ({exc.kind}): {exc.message}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
