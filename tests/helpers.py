from app.cache.store import CacheStore
from app.core.errors import CacheUnavailableError
from app.services.notifications import NotificationService


class FailingCacheStore(CacheStore):
    """Every operation fails, as if the cache backend were down."""

    backend = "failing"

    def __init__(self):
        self.calls = 0

    async def _fail(self, *args, **kwargs):
        self.calls += 1
        raise CacheUnavailableError("cache backend is down")

    get = set = delete = scan_keys = ping = _fail


class RecordingNotifier(NotificationService):
    def __init__(self, fail: bool = False):
        super().__init__(delay_seconds=0)
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    async def notify_assignment(self, recipient: str, task_title: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP server unreachable")
        self.sent.append((recipient, task_title))
