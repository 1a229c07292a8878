"""
Failed password attempt lockout.

Password login for an identity is refused while it has accumulated
``max_attempts`` failures inside the trailing ``window``. The refusal
carries the same caller message as a wrong password, and it is only
checked once the record is known to be loginable, so it reveals nothing
a wrong password would not.

A successful login clears the identity's failures. Failures are counted
server-side, per identity token, so clearing cookies or switching
devices does not reset them.
"""

import logging
from datetime import timedelta

from .exceptions import StoreUnavailable
from .identity import short_token
from .ports import Clock, FailedLoginLog, utc_now

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_WINDOW = timedelta(minutes=30)


class LoginThrottle:
    def __init__(
        self,
        log: FailedLoginLog,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        window: timedelta = DEFAULT_WINDOW,
        clock: Clock = utc_now,
    ) -> None:
        self._log = log
        self._max_attempts = max_attempts
        self._window = window
        self._clock = clock

    def failures(self, identity_token: str) -> int:
        """
        Failures recorded inside the window.

        Raises:
            StoreUnavailable: The attempt log could not be read
        """
        count = self._log.count_failed_logins(identity_token, self._clock() - self._window)
        if count is None:
            raise StoreUnavailable("failed login lookup")
        return count

    def is_locked(self, identity_token: str) -> bool:
        locked = self.failures(identity_token) >= self._max_attempts
        if locked:
            logger.warning("Password login locked for %s", short_token(identity_token))
        return locked

    def attempts_remaining(self, identity_token: str) -> int:
        return max(0, self._max_attempts - self.failures(identity_token))

    def record_failure(self, identity_token: str) -> None:
        self._log.record_failed_login(identity_token, self._clock())

    def reset(self, identity_token: str) -> None:
        self._log.clear_failed_logins(identity_token)
