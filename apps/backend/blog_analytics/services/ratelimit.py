from typing import Protocol


class RateLimiter(Protocol):
    """
    Throttling lives outside the pipeline (reverse proxy, gateway, shared
    cache). The app only asks whether a caller may proceed.
    """

    def allow(self, client_key: str) -> bool: ...


class AllowAllRateLimiter:
    def allow(self, client_key: str) -> bool:
        return True
