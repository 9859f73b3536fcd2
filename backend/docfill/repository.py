"""
Record storage for templates and generated PDFs.

`Repository` is the interface the service depends on. `JsonFileRepository`
keeps one JSON file per record under `<base_dir>/<collection>/`; record ids
are UUIDs assigned on create. Records carry an opaque `user_id`; passing a
`user_id` to a lookup restricts it to that owner's records.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Generic, List, Optional, TypeVar

from .models import GeneratedPdf, Template

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", Template, GeneratedPdf)


class Repository(ABC, Generic[RecordT]):
    @abstractmethod
    def create(self, record: RecordT) -> RecordT:
        """Persist a new record and return it with its id set."""

    @abstractmethod
    def get(self, record_id: str, user_id: Optional[str] = None) -> Optional[RecordT]:
        ...

    @abstractmethod
    def list(self, user_id: Optional[str] = None) -> List[RecordT]:
        """All records, newest first."""

    @abstractmethod
    def delete(self, record_id: str, user_id: Optional[str] = None) -> bool:
        ...


class JsonFileRepository(Repository[RecordT]):
    def __init__(
        self,
        base_dir: Path,
        collection: str,
        from_dict: Callable[[dict], RecordT],
        sort_key: Callable[[RecordT], str],
    ):
        self.records_dir = Path(base_dir) / collection
        self.records_dir.mkdir(parents=True, exist_ok=True)
        self._from_dict = from_dict
        self._sort_key = sort_key

    def _record_path(self, record_id: str) -> Optional[Path]:
        # Ids are generated here; anything that is not a plain file name cannot exist.
        if not record_id or Path(record_id).name != record_id:
            return None
        return self.records_dir / f"{record_id}.json"

    def _load(self, path: Path) -> Optional[RecordT]:
        try:
            with path.open("r", encoding="utf-8") as f:
                return self._from_dict(json.load(f))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, TypeError, KeyError) as exc:
            logger.error("Error loading record %s: %s", path.name, exc)
            return None

    @staticmethod
    def _owned_by(record: RecordT, user_id: Optional[str]) -> bool:
        return user_id is None or record.user_id == user_id

    def create(self, record: RecordT) -> RecordT:
        record.id = uuid.uuid4().hex
        target = self.records_dir / f"{record.id}.json"
        tmp_path = target.with_suffix(".json.tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(record.to_dict(), f, indent=2)
        os.replace(tmp_path, target)
        return record

    def get(self, record_id: str, user_id: Optional[str] = None) -> Optional[RecordT]:
        path = self._record_path(record_id)
        if path is None:
            return None
        record = self._load(path)
        if record is None or not self._owned_by(record, user_id):
            return None
        return record

    def list(self, user_id: Optional[str] = None) -> List[RecordT]:
        records = []
        for path in self.records_dir.glob("*.json"):
            record = self._load(path)
            if record is not None and self._owned_by(record, user_id):
                records.append(record)
        records.sort(key=self._sort_key, reverse=True)
        return records

    def delete(self, record_id: str, user_id: Optional[str] = None) -> bool:
        if self.get(record_id, user_id=user_id) is None:
            return False
        try:
            self.records_dir.joinpath(f"{record_id}.json").unlink()
        except FileNotFoundError:
            return False
        return True


class TemplateRepository(JsonFileRepository[Template]):
    def __init__(self, base_dir: Path):
        super().__init__(base_dir, "templates", Template.from_dict, lambda t: t.uploaded_at)

    def search(self, query: str, user_id: Optional[str] = None) -> List[Template]:
        needle = query.lower()
        return [
            t for t in self.list(user_id)
            if needle in t.name.lower() or needle in t.filename.lower()
        ]


class GeneratedPdfRepository(JsonFileRepository[GeneratedPdf]):
    def __init__(self, base_dir: Path):
        super().__init__(base_dir, "generated_pdfs", GeneratedPdf.from_dict, lambda p: p.created_at)
