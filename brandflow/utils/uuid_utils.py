from datetime import datetime
from uuid import UUID

from ulid import ULID


def generate_ulid_uuid() -> UUID:
    """Time-ordered UUID, so session and log rows sort by creation in indexes."""
    return ULID().to_uuid()


def ulid_uuid_timestamp(value: UUID) -> datetime:
    """Creation time embedded in an id produced by `generate_ulid_uuid`."""
    return ULID.from_uuid(value).datetime
