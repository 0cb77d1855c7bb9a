# stream_haven/hooks.py
# Side-effect callbacks the core issues at defined points: user notifications,
# page redirects and the "account switched" signal. The UI layer supplies real
# implementations; the defaults only log.

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


def _log_notification(message: str, kind: str = "success") -> None:
    log = logger.warning if kind == "error" else logger.info
    log("[notify:%s] %s", kind, message)


def _log_redirect(target: str) -> None:
    logger.info("[redirect] %s", target)


def _log_account_switched(account_id: str, account: dict) -> None:
    logger.info("[account] switched to %s", account_id)


@dataclass
class Hooks:
    notify: Callable[[str, str], None] = _log_notification
    redirect: Callable[[str], None] = _log_redirect
    account_switched: Callable[[str, dict], None] = _log_account_switched


@dataclass
class RecordingHooks(Hooks):
    """
    Hooks that remember every call. Used by the web layer to turn the
    notifications of one request into its JSON response.
    """
    notifications: List[Tuple[str, str]] = field(default_factory=list)
    redirects: List[str] = field(default_factory=list)
    switches: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.notify = self._notify
        self.redirect = self._redirect
        self.account_switched = self._account_switched

    def _notify(self, message: str, kind: str = "success") -> None:
        _log_notification(message, kind)
        self.notifications.append((message, kind))

    def _redirect(self, target: str) -> None:
        _log_redirect(target)
        self.redirects.append(target)

    def _account_switched(self, account_id: str, account: dict) -> None:
        _log_account_switched(account_id, account)
        self.switches.append(account_id)

    @property
    def last_message(self):
        return self.notifications[-1][0] if self.notifications else None

    def clear(self) -> None:
        self.notifications.clear()
        self.redirects.clear()
        self.switches.clear()
