"""
Bookmark store backed by an append-only JSON Lines file.

Each save appends the full record; the latest line for an id wins.
Keepsake's archive core never calls the store directly. It is the
collaborator that callers read bookmarks from and write updated records
back into.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from ..core.errors import StoreError
from ..core.models import BookmarkRecord


class BookmarkStore:
    def __init__(self, path: str):
        self.path = path
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        self.logger = logging.getLogger(__name__)
        self._lock = threading.RLock()

    def save(self, bookmark: BookmarkRecord) -> BookmarkRecord:
        record = bookmark.to_dict()
        record['modified_at'] = datetime.now(timezone.utc).isoformat(timespec='seconds')
        try:
            with self._lock, open(self.path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError as e:
            raise StoreError(f"failed to save bookmark {bookmark.id}: {e}",
                             bookmark_id=bookmark.id, url=bookmark.url) from e
        return BookmarkRecord.from_dict(record)

    def iter_records(self) -> Iterable[Dict]:
        if not os.path.exists(self.path):
            return
        with open(self.path, 'r', encoding='utf-8') as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    self.logger.warning(f"Skipping corrupt store line {lineno} in {self.path}")
                    continue

    def _latest(self) -> Dict[int, BookmarkRecord]:
        latest: Dict[int, BookmarkRecord] = {}
        for rec in self.iter_records():
            try:
                bookmark = BookmarkRecord.from_dict(rec)
            except (KeyError, TypeError, ValueError):
                self.logger.warning(f"Skipping malformed bookmark record: {rec!r}")
                continue
            if rec.get('deleted'):
                latest.pop(bookmark.id, None)
            else:
                latest[bookmark.id] = bookmark
        return latest

    def get(self, bookmark_id: int) -> Optional[BookmarkRecord]:
        return self._latest().get(int(bookmark_id))

    def iter_bookmarks(self) -> Iterable[BookmarkRecord]:
        latest = self._latest()
        for bookmark_id in sorted(latest):
            yield latest[bookmark_id]

    def next_id(self) -> int:
        ids = [rec.get('id') for rec in self.iter_records() if isinstance(rec.get('id'), int)]
        return max(ids, default=0) + 1

    def create(self, url: str, title: str = "") -> BookmarkRecord:
        with self._lock:
            return self.save(BookmarkRecord(id=self.next_id(), url=url, title=title))

    def delete(self, bookmark_id: int) -> None:
        tombstone = {'id': int(bookmark_id), 'url': '', 'deleted': True}
        try:
            with self._lock, open(self.path, 'a', encoding='utf-8') as f:
                f.write(json.dumps(tombstone) + "\n")
        except OSError as e:
            raise StoreError(f"failed to delete bookmark {bookmark_id}: {e}",
                             bookmark_id=bookmark_id) from e
