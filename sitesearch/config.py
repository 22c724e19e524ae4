from dataclasses import dataclass, field
from typing import List

from .errors import ConfigError


DEFAULT_USER_AGENT = "sitesearch-crawler/1.0 (+https://example.com; contact: crawler@example.com)"
DEFAULT_BATCH_SIZE = 50


@dataclass(frozen=True)
class CrawlConfig:
    entry_points: List[str]
    max_depth: int
    parallelism: int
    delay_seconds: float
    allowed_domains: List[str] = field(default_factory=list)
    data_dir: str = "data"
    max_connections: int = 16
    request_timeout: float = 15.0
    user_agent: str = DEFAULT_USER_AGENT
    obey_robots_txt: bool = True
    fetch_retries: int = 0
    metrics_interval: float = 10.0

    def validate(self) -> "CrawlConfig":
        if not self.entry_points or not any(u and u.strip() for u in self.entry_points):
            raise ConfigError("entry_points must contain at least one URL")
        if not isinstance(self.max_depth, int) or self.max_depth <= 0:
            raise ConfigError(f"max_depth must be a positive integer, got {self.max_depth!r}")
        if not isinstance(self.parallelism, int) or self.parallelism <= 0:
            raise ConfigError(f"parallelism must be a positive integer, got {self.parallelism!r}")
        if self.delay_seconds is None or self.delay_seconds <= 0:
            raise ConfigError(f"delay_seconds must be positive, got {self.delay_seconds!r}")
        if self.fetch_retries < 0:
            raise ConfigError(f"fetch_retries must not be negative, got {self.fetch_retries!r}")
        return self


@dataclass(frozen=True)
class IndexConfig:
    data_dir: str
    index_path: str
    batch_size: int = DEFAULT_BATCH_SIZE

    def validate(self) -> "IndexConfig":
        if not self.data_dir:
            raise ConfigError("data_dir is required")
        if not self.index_path:
            raise ConfigError("index_path is required")
        if not isinstance(self.batch_size, int) or self.batch_size <= 0:
            raise ConfigError(f"batch_size must be a positive integer, got {self.batch_size!r}")
        return self
