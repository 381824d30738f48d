"""Static registry of candidate RPC endpoints."""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

from ..config.settings import Settings


@dataclass(frozen=True)
class Endpoint:
    """One RPC node address plus any headers it requires."""
    url: str
    auth_headers: Mapping[str, str] = field(default_factory=dict)

    def headers(self) -> Dict[str, str]:
        """Request headers for this endpoint."""
        return {"Content-Type": "application/json", **dict(self.auth_headers)}


class EndpointRegistry:
    """Ordered, immutable list of endpoints defined at startup."""

    def __init__(self, endpoints: Sequence[Endpoint]):
        if not endpoints:
            raise ValueError("EndpointRegistry needs at least one endpoint")
        self._endpoints: tuple = tuple(endpoints)

    @classmethod
    def from_urls(
        cls,
        urls: Sequence[str],
        auth_headers: Optional[Mapping[str, Mapping[str, str]]] = None,
    ) -> "EndpointRegistry":
        auth_headers = auth_headers or {}
        return cls([Endpoint(url=url, auth_headers=dict(auth_headers.get(url, {}))) for url in urls])

    @classmethod
    def from_settings(cls, settings: Settings) -> "EndpointRegistry":
        return cls.from_urls(settings.endpoints, settings.auth_headers)

    def __len__(self) -> int:
        return len(self._endpoints)

    def __getitem__(self, index: int) -> Endpoint:
        return self._endpoints[index]

    def __iter__(self) -> Iterator[Endpoint]:
        return iter(self._endpoints)

    @property
    def urls(self) -> List[str]:
        return [e.url for e in self._endpoints]

    def ring(self, start: int) -> Iterator[int]:
        """Indices of every endpoint once, in ring order from start."""
        n = len(self._endpoints)
        for i in range(n):
            yield (start + i) % n
