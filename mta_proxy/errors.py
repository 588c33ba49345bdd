from __future__ import annotations

from typing import Optional


class ProxyError(RuntimeError):
    pass


class UpstreamUnavailable(ProxyError):
    def __init__(self, source: str, status_code: int, url: Optional[str] = None) -> None:
        super().__init__(f"{source} upstream returned HTTP {status_code}.")
        self.source = source
        self.status_code = status_code
        self.url = url


class FeedDecodeError(ProxyError):
    pass


class StructuralError(ProxyError):
    pass
