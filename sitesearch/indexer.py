import logging
import time
from pathlib import Path
from typing import Callable, List, Optional

from .config import IndexConfig
from .errors import ArtifactListError, ArtifactParseError, BatchCommitError
from .metrics import Metrics
from .search_index import SearchIndex
from .storage import is_artifact, load_artifact
from .types import IndexDocument, SearchIndexProtocol


logger = logging.getLogger(__name__)


def list_artifacts(data_dir: str) -> List[Path]:
    """Artifact files directly inside ``data_dir``, sorted by name."""
    root = Path(data_dir)
    try:
        entries = sorted(root.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        logger.error("Terminate indexer, cannot load data entries at %s", root)
        raise ArtifactListError(f"cannot list data directory {root}: {exc}") from exc
    return [p for p in entries if is_artifact(p)]


def _commit(index: SearchIndexProtocol, batch, metrics: Optional[Metrics]) -> None:
    t0 = time.perf_counter()
    try:
        index.commit(batch)
    except BatchCommitError as exc:
        logger.error("Bulk indexing error: %s", exc)
        raise
    if metrics is not None:
        metrics.record_commit(len(batch), (time.perf_counter() - t0) * 1000.0)


def index_artifacts(
    index: SearchIndexProtocol,
    data_dir: str,
    metrics: Optional[Metrics] = None,
) -> int:
    """Index every record of every artifact in ``data_dir``; return the count.

    Files are processed one at a time in name order and batches are
    committed synchronously as they fill up, followed by one final flush of
    the remainder. Any unreadable artifact or rejected batch aborts the run;
    batches committed before the failure stay in the index.
    """
    count = 0
    batch = index.new_batch()
    for path in list_artifacts(data_dir):
        try:
            records = load_artifact(path)
        except ArtifactParseError as exc:
            logger.error("Fail to load crawler data file %s: %s", path, exc.reason)
            raise
        for record in records:
            count += 1
            batch.add(IndexDocument.from_record(record))
            if batch.is_full:
                _commit(index, batch, metrics)
                logger.info("Documents already indexed: %d", count)
                batch = index.new_batch()

    if len(batch) > 0:
        _commit(index, batch, metrics)
        logger.info("Flushed final batch of %d documents, total indexed: %d", len(batch), count)

    return count


def benchmark(pipeline: Callable[[], int]) -> Callable[[], int]:
    """Wrap ``pipeline`` so that each call logs its throughput."""

    def run() -> int:
        start = time.perf_counter()
        try:
            count = pipeline()
        except Exception:
            logger.error("Indexing failed after %.2fs", time.perf_counter() - start)
            raise
        elapsed = time.perf_counter() - start
        per_doc_ms = (elapsed / count) * 1000.0 if count else 0.0
        logger.info(
            "Indexed %d documents, in %.2fs (average %.2f ms/document)",
            count,
            elapsed,
            per_doc_ms,
        )
        return count

    return run


def build_index(config: IndexConfig, metrics: Optional[Metrics] = None) -> int:
    """Rebuild the index at ``config.index_path`` from ``config.data_dir``."""
    config.validate()
    index = SearchIndex.bootstrap(config.index_path, batch_size=config.batch_size)
    try:
        return benchmark(lambda: index_artifacts(index, config.data_dir, metrics=metrics))()
    finally:
        index.close()
