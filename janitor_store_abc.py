from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from config import StoreConfig
from janitor_context import CleanupContext


class JanitorStore(ABC):
    """
    Abstract base class for stores the janitor can purge.

    A store owns the definition of "inactive" for every category. Each flush
    method deletes inactive entries older than ``not_after`` and returns the
    number of rows removed. Flushes must be idempotent: running one twice
    against the same cutoff removes nothing the second time and does not fail.
    """

    backend = ""

    def __init__(self, config: StoreConfig, **kwargs):
        """
        Initialize the store with an explicit configuration.

        Args:
            config: DSN and lifespans for this run
            **kwargs: Additional backend-specific options
        """
        self.config = config
        self._reference_time: Optional[datetime] = None

    def now(self) -> datetime:
        """Current UTC time; tests override this to freeze the clock."""
        return datetime.now(timezone.utc)

    def pin_clock(self, now: datetime) -> None:
        """Measure every lifespan from ``now`` for the rest of the run."""
        self._reference_time = now

    def reference_time(self) -> datetime:
        """
        Time lifespans are measured from.

        Read from the clock once and then reused, so every flush of a run
        shares the same boundary.
        """
        if self._reference_time is None:
            self._reference_time = self.now()
        return self._reference_time

    def _effective_cutoff(
        self, not_after: datetime, lifespan: Optional[timedelta]
    ) -> datetime:
        """The earlier of ``not_after`` and ``now - lifespan``."""
        if lifespan is None:
            return not_after
        max_age = self.reference_time() - lifespan
        return min(not_after, max_age)

    @abstractmethod
    def init(self, ctx: CleanupContext) -> None:
        """
        Verify the store is reachable and holds the janitor tables.

        Raises:
            InitializationError: If the store cannot be used
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release any connection held by the store."""
        pass

    @abstractmethod
    def flush_inactive_access_tokens(
        self, ctx: CleanupContext, not_after: datetime
    ) -> int:
        """Delete access tokens requested before both the cutoff and the access lifespan."""
        pass

    @abstractmethod
    def flush_inactive_refresh_tokens(
        self, ctx: CleanupContext, not_after: datetime
    ) -> int:
        """Delete refresh tokens requested before both the cutoff and the refresh lifespan."""
        pass

    @abstractmethod
    def flush_inactive_login_consent_requests(
        self, ctx: CleanupContext, not_after: datetime
    ) -> int:
        """
        Delete rejected or abandoned login and consent requests.

        Only requests older than ``not_after`` are considered. A rejected
        request is inactive as soon as it is rejected; an unhandled one once
        it is older than the consent request max age. Consent requests go
        first, then their login requests along with the inactive ones.
        """
        pass

    @abstractmethod
    def flush_inactive_jwt_bearer_grants(
        self, ctx: CleanupContext, not_after: datetime
    ) -> int:
        """Delete JWT-bearer grants that expired before the cutoff."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
