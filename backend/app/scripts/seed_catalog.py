"""Seed the test catalog and the shared autocomplete pool.

Loads every test definition from fixtures/catalog/*.json into the blood_test
table, and fixtures/catalog/autocomplete.txt (one value per line) into
autocomplete_values.

Usage:
    python -m app.scripts.seed_catalog

The script is idempotent - it can be run multiple times safely.
Existing catalog entries are replaced; autocomplete values already present
are skipped.
"""

import asyncio
import json
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError

from app.database import async_session_maker, engine
from app.models.lab import AutocompleteValue
from app.repositories.lab import LabRepository
from app.schemas.blood_test import TestCatalogEntry

AUTOCOMPLETE_FILE = "autocomplete.txt"


async def verify_connection() -> bool:
    """Verify the database connection is working."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        print("  PostgreSQL: connected")
    except (OSError, SQLAlchemyError) as e:
        print(f"  PostgreSQL: FAILED - {e}")
        return False
    return True


def load_definition(path: Path) -> tuple[str, TestCatalogEntry]:
    """
    Read one catalog file.

    The file holds ``{"test_name": ..., "parameter": [...], "sub_heading": [...]}``;
    a missing ``test_name`` falls back to the file stem.

    Raises:
        ValueError: If the file is not valid JSON or not a valid definition.
    """
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"{path.name}: invalid JSON ({e})") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path.name}: expected an object")

    name = data.get("test_name") or path.stem
    try:
        entry = TestCatalogEntry.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"{path.name}: invalid definition ({e.error_count()} errors)") from e
    return name, entry


def load_autocomplete_values(path: Path) -> list[str]:
    """Non-blank lines of the autocomplete file, in order, without duplicates."""
    if not path.exists():
        return []
    values = [line.strip() for line in path.read_text().splitlines()]
    return list(dict.fromkeys(v for v in values if v))


async def seed_catalog(catalog_dir: Path) -> dict[str, int]:
    """
    Seed catalog definitions and autocomplete values.

    Args:
        catalog_dir: Path to fixtures/catalog directory.

    Returns:
        Dictionary with counts: tests_loaded, tests_skipped, autocomplete_added.
    """
    stats = {"tests_loaded": 0, "tests_skipped": 0, "autocomplete_added": 0}

    definition_files = sorted(catalog_dir.glob("*.json"))
    print(f"Found {len(definition_files)} test definitions")

    print("\nVerifying database connection...")
    if not await verify_connection():
        raise RuntimeError("Database connection verification failed")

    async with async_session_maker() as session:
        repo = LabRepository(session)

        print("\nLoading test definitions...")
        for path in definition_files:
            try:
                name, entry = load_definition(path)
            except ValueError as e:
                print(f"  Skipping {e}")
                stats["tests_skipped"] += 1
                continue
            await repo.upsert_blood_test(name, entry)
            print(f"  {name}: {len(entry.parameter)} parameters, {len(entry.sub_heading)} subheadings")
            stats["tests_loaded"] += 1

        values = load_autocomplete_values(catalog_dir / AUTOCOMPLETE_FILE)
        if values:
            result = await session.execute(select(AutocompleteValue.value))
            existing = set(result.scalars().all())
            for value in values:
                if value not in existing:
                    session.add(AutocompleteValue(value=value))
                    stats["autocomplete_added"] += 1

        await session.commit()

    return stats


def main() -> None:
    """Main entry point for the seed script."""
    # Resolve fixtures directory relative to repo root
    repo_root = Path(__file__).parent.parent.parent.parent
    catalog_dir = repo_root / "fixtures" / "catalog"

    if not catalog_dir.exists():
        print(f"Catalog directory not found: {catalog_dir}")
        return

    print("=" * 50)
    print("Labdesk Catalog Seeding")
    print("=" * 50)

    stats = asyncio.run(seed_catalog(catalog_dir))

    print("\n" + "=" * 50)
    print("Summary")
    print("=" * 50)
    print(f"  Tests loaded: {stats['tests_loaded']}")
    print(f"  Tests skipped: {stats['tests_skipped']}")
    print(f"  Autocomplete values added: {stats['autocomplete_added']}")
    print("\nCatalog seeding complete!")


if __name__ == "__main__":
    main()
