class SiteSearchError(Exception):
    """Base class for crawl and indexing failures."""


class ConfigError(SiteSearchError):
    pass


class DirectoryError(SiteSearchError):
    pass


class ArtifactListError(SiteSearchError):
    pass


class ArtifactParseError(SiteSearchError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class BatchCommitError(SiteSearchError):
    pass


class FetchError(SiteSearchError):
    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
