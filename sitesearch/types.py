from dataclasses import dataclass
from typing import Any, Dict, NamedTuple, Protocol, Tuple


BODY_SEPARATOR = " · "


@dataclass(frozen=True)
class FetchResult:
    status: int
    content_type: str
    text: str
    size_bytes: int


class HttpClientProtocol(Protocol):
    def fetch(self, url: str) -> FetchResult: ...


class FrontierEntry(NamedTuple):
    url: str
    depth: int


@dataclass(frozen=True)
class PageRecord:
    url: str
    title: str
    texts: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"URL": self.url, "Title": self.title, "Texts": list(self.texts)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageRecord":
        """Build a record from its artifact form.

        ``URL`` is required; ``Title`` and ``Texts`` default to empty. Raises
        ``ValueError`` when a field has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        url = data.get("URL")
        if not isinstance(url, str) or not url:
            raise ValueError("missing or invalid 'URL'")
        title = data.get("Title") or ""
        if not isinstance(title, str):
            raise ValueError(f"invalid 'Title' for {url}")
        texts = data.get("Texts") or []
        if not isinstance(texts, list) or not all(isinstance(t, str) for t in texts):
            raise ValueError(f"invalid 'Texts' for {url}")
        return cls(url=url, title=title, texts=tuple(texts))


@dataclass(frozen=True)
class IndexDocument:
    url: str
    title: str
    body: str

    @classmethod
    def from_record(cls, record: PageRecord) -> "IndexDocument":
        return cls(url=record.url, title=record.title, body=BODY_SEPARATOR.join(record.texts))


class SearchIndexProtocol(Protocol):
    def new_batch(self) -> Any: ...

    def commit(self, batch: Any) -> None: ...
