"""Read-only user and organization directories backed by JSON files."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .storage.files import read_json, safe_identity

LOGGER = logging.getLogger("campusdesk.directory")


@dataclass(frozen=True)
class StoreRef:
    """A knowledge store a student may query, and the provider that owns it."""

    store_name: str
    account_email: Optional[str] = None
    index_name: Optional[str] = None

    @property
    def backing_index(self) -> str:
        return self.index_name or self.store_name

    @classmethod
    def from_record(cls, record: Any) -> Optional["StoreRef"]:
        if isinstance(record, str):
            name = record.strip()
            return cls(store_name=name) if name else None
        if not isinstance(record, dict):
            return None
        name = record.get("storeName") or record.get("store_name")
        if not isinstance(name, str) or not name.strip():
            return None
        owner = record.get("accountEmail") or record.get("account_email")
        index = record.get("storeId") or record.get("indexName") or record.get("index_name")
        return cls(
            store_name=name.strip(),
            account_email=owner.strip() if isinstance(owner, str) and owner.strip() else None,
            index_name=index.strip() if isinstance(index, str) and index.strip() else None,
        )


@dataclass
class Student:
    email: str
    university_email: Optional[str]
    accessible_stores: List[StoreRef] = field(default_factory=list)

    @property
    def store_names(self) -> List[str]:
        return [ref.store_name for ref in self.accessible_stores]


@dataclass
class University:
    email: str
    api_key: Optional[str]


def _load_record(root: Path, identity: str) -> Optional[Dict[str, Any]]:
    path = root / f"{safe_identity(identity)}.json"
    try:
        payload = read_json(path)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        LOGGER.warning("directory record unreadable path=%s err=%s", path, exc)
        return None
    return payload if isinstance(payload, dict) else None


class UserDirectory:
    """Resolves student identities to their organization and store list."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def lookup(self, email: str) -> Optional[Student]:
        if not email:
            return None
        record = _load_record(self._root, email)
        if record is None:
            return None
        stores: List[StoreRef] = []
        for item in record.get("accessibleStores") or []:
            ref = StoreRef.from_record(item)
            if ref is not None:
                stores.append(ref)
        university = record.get("universityEmail")
        return Student(
            email=email,
            university_email=university if isinstance(university, str) and university else None,
            accessible_stores=stores,
        )


class OrganizationDirectory:
    """Resolves organization identities to their configured Gemini key."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def lookup(self, email: Optional[str]) -> Optional[University]:
        if not email:
            return None
        record = _load_record(self._root, email)
        if record is None:
            return None
        key_info = record.get("apiKeyInfo")
        key = key_info.get("key") if isinstance(key_info, dict) else None
        if not isinstance(key, str) or not key.strip():
            key = None
        return University(email=email, api_key=key.strip() if key else None)


__all__ = ["OrganizationDirectory", "StoreRef", "Student", "University", "UserDirectory"]
