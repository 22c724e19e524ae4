import json
import logging
import os
import re
import threading
import time
import uuid
from pathlib import Path
from typing import Dict, List
from urllib.parse import urlparse

from .errors import ArtifactParseError
from .types import PageRecord


logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".json"


def new_session_id() -> str:
    return time.strftime("%Y%m%dT%H%M%SZ", time.gmtime()) + "-" + uuid.uuid4().hex[:8]


def _site_slug(url: str) -> str:
    host = urlparse(url).netloc.lower() or "unknown"
    return re.sub(r"[^a-z0-9.-]+", "_", host)


class ArtifactWriter:
    """Collects the records of one crawl session and writes them per site.

    Records are buffered in memory; ``close`` writes one JSON array per host
    named ``<host>-<session_id>.json`` so that sessions never overwrite each
    other's files.
    """

    def __init__(self, data_dir: str, session_id: str | None = None) -> None:
        self.data_dir = Path(data_dir)
        self.session_id = session_id or new_session_id()
        self._records: Dict[str, List[PageRecord]] = {}
        self._lock = threading.Lock()
        self._closed = False

    def write(self, record: PageRecord) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("ArtifactWriter is closed")
            self._records.setdefault(_site_slug(record.url), []).append(record)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._records.values())

    def close(self) -> List[Path]:
        with self._lock:
            if self._closed:
                return []
            self._closed = True
            grouped = dict(self._records)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        written: List[Path] = []
        for site, records in sorted(grouped.items()):
            path = self.data_dir / f"{site}-{self.session_id}{ARTIFACT_SUFFIX}"
            tmp = path.with_name(path.name + ".tmp")
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump([r.to_dict() for r in records], fh, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
            logger.info("Wrote %d records to %s", len(records), path)
            written.append(path)
        return written


def is_artifact(path: Path) -> bool:
    return path.is_file() and path.name.endswith(ARTIFACT_SUFFIX)


def load_artifact(path: Path) -> List[PageRecord]:
    """Read and validate one artifact file, preserving record order."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ArtifactParseError(str(path), f"cannot read file: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ArtifactParseError(str(path), f"invalid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ArtifactParseError(str(path), "expected a JSON array of records")
    records: List[PageRecord] = []
    for i, item in enumerate(data):
        try:
            records.append(PageRecord.from_dict(item))
        except ValueError as exc:
            raise ArtifactParseError(str(path), f"record {i}: {exc}") from exc
    return records
