"""
Shared pytest fixtures for the hubsync test suite.

Provides:
    - raw_records: Parse-style records for every collection, including one
      orphaned subcategory and one video whose subcategory does not exist
    - store: an InMemoryRemoteStore seeded with raw_records
    - tree: a StructuredTree built from raw_records
    - synchronizer: a ContentSynchronizer over ``store`` (not yet started)
    - backup_manager: a BackupManager writing into a temporary directory
"""

import copy
import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Ensure hubsync/ is importable regardless of where pytest is invoked
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from hubsync.backup_manager import BackupManager  # noqa: E402
from hubsync.remote_store import InMemoryRemoteStore  # noqa: E402
from hubsync.structurer import structure_records  # noqa: E402
from hubsync.synchronizer import ContentSynchronizer  # noqa: E402


def area_pointer(object_id):
    return {"__type": "Pointer", "className": "Area", "objectId": object_id}


SAMPLE_RECORDS = {
    "areas": [
        {
            "objectId": "A1",
            "area": "Shelter",
            "icon": "fa-home",
            "createdAt": "2023-01-01T00:00:00.000Z",
            "updatedAt": "2023-01-01T00:00:00.000Z",
        },
        {
            "objectId": "A2",
            "area": "Water",
            "createdAt": "2023-01-02T00:00:00.000Z",
            "updatedAt": "2023-01-02T00:00:00.000Z",
        },
    ],
    "subcategories": [
        {
            "objectId": "S1",
            "uniqueId": "shelter-0",
            "title": "Methods",
            "area": area_pointer("A1"),
            "materials": ["stone", "wire mesh"],
            "createdAt": "2023-02-01T00:00:00.000Z",
            "updatedAt": "2023-02-01T00:00:00.000Z",
        },
        {
            "objectId": "S2",
            "uniqueId": "shelter-1",
            "title": "Bamboo Structures",
            "areaId": "A1",
            "createdAt": "2023-02-02T00:00:00.000Z",
            "updatedAt": "2023-02-02T00:00:00.000Z",
        },
        {
            "objectId": "S3",
            "uniqueId": "water-0",
            "title": "Filtration",
            "area": area_pointer("A2"),
            "materials": ["sand"],
            "createdAt": "2023-02-03T00:00:00.000Z",
            "updatedAt": "2023-02-03T00:00:00.000Z",
        },
        {
            "objectId": "S4",
            "uniqueId": "lost-0",
            "title": "Lost Techniques",
            "areaId": "A9",
            "createdAt": "2023-02-04T00:00:00.000Z",
            "updatedAt": "2023-02-04T00:00:00.000Z",
        },
    ],
    "videos": [
        {
            "objectId": "V1",
            "title": "Building The Perfect Gabion Retaining Wall",
            "youtubeId": "vHfN4gYFgu8",
            "videoDescription": "Stone baskets for slopes",
            "categories": ["S1"],
            "videoTags": ["gabion", "walls"],
            "views": 1500,
            "rating": 4.5,
            "creator": "Alice",
            "date": "2024-01-01",
            "createdAt": "2024-01-02T00:00:00.000Z",
            "updatedAt": "2024-01-02T00:00:00.000Z",
        },
        {
            "objectId": "V2",
            "title": "Bamboo Roof Framing",
            "youtubeId": "bamb00R00f1",
            "categories": ["S1", "S2"],
            "tags": ["Bamboo", "roofing"],
            "views": 300,
            "rating": 4.9,
            "creator": "Bob",
            "date": {"__type": "Date", "iso": "2024-03-05T12:00:00.000Z"},
            "createdAt": "2024-03-05T12:00:00.000Z",
            "updatedAt": "2024-03-05T12:00:00.000Z",
        },
        {
            "objectId": "V3",
            "title": "Slow Sand Filter",
            "description": "Slow sand filtration for a village well",
            "categories": ["S3"],
            "tags": "water, filtration",
            "views": 50,
            "creator": "Alice",
            "date": "2023-11-20",
            "createdAt": "2023-11-20T00:00:00.000Z",
            "updatedAt": "2023-11-20T00:00:00.000Z",
        },
        {
            "objectId": "V4",
            "title": "Unsorted Clip",
            "categories": ["S99"],
            "createdAt": "2022-05-01T00:00:00.000Z",
            "updatedAt": "2022-05-01T00:00:00.000Z",
        },
    ],
    "tags": [
        {
            "objectId": "T1",
            "name": "bamboo",
            "definition": "A fast-growing grass used for building",
            "createdAt": "2023-03-01T00:00:00.000Z",
            "updatedAt": "2023-03-01T00:00:00.000Z",
        },
        {
            "objectId": "T2",
            "name": "Gabion",
            "createdAt": "2023-03-02T00:00:00.000Z",
            "updatedAt": "2023-03-02T00:00:00.000Z",
        },
    ],
    "languages": [
        {"objectId": "L1", "code": "en", "name": "English", "nativeName": "English"},
    ],
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def raw_records():
    """Return a fresh deep copy of the sample records."""
    return copy.deepcopy(SAMPLE_RECORDS)


@pytest.fixture
def store(raw_records):
    """Return an InMemoryRemoteStore seeded with the sample records."""
    return InMemoryRemoteStore(raw_records)


@pytest.fixture
def tree(raw_records):
    """Return a StructuredTree built from the sample records."""
    return structure_records(raw_records)


@pytest.fixture
def backup_manager(tmp_path):
    """Return a BackupManager writing into a temporary directory."""
    return BackupManager(tmp_path / "backups")


@pytest.fixture
def synchronizer(store):
    """Return a ContentSynchronizer over the seeded store, not yet started."""
    sync = ContentSynchronizer(store)
    yield sync
    sync.stop()
