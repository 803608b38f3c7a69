"""Background session check.

Polls GET /auth/session on a fixed interval so a dashboard notices an expired
or revoked session. The thread is owned by the caller and must be stopped
explicitly; stop() wakes it immediately instead of waiting out the interval.
"""

import logging
import threading
from typing import Callable

from claim_desk.client.api import ClaimsApiClient
from claim_desk.config.settings import SESSION_POLL_SECONDS
from claim_desk.exceptions import AuthenticationRequired, ClaimDeskError

logger = logging.getLogger(__name__)


class SessionPoller:
    """Cancellable thread that re-validates the staff session."""

    def __init__(
        self,
        client: ClaimsApiClient,
        interval: float | None = None,
        on_expired: Callable[[], None] | None = None,
    ):
        self.client = client
        self.interval = SESSION_POLL_SECONDS if interval is None else interval
        self.on_expired = on_expired
        self.checks = 0
        self.expired = False
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="session-poller", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def check_once(self) -> bool:
        """One session check. Returns False once the session is gone."""
        self.checks += 1
        try:
            self.client.session()
        except AuthenticationRequired:
            logger.info("Staff session expired; stopping session checks")
            self.expired = True
            if self.on_expired is not None:
                self.on_expired()
            return False
        except (ClaimDeskError, OSError) as e:
            # Transient failure; the next tick tries again
            logger.warning("Session check failed: %s", e)
        return True

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            if not self.check_once():
                break
