import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ALERT_KINDS = ("success", "error")
DEFAULT_DELAY = 5.0


@dataclass(frozen=True)
class Alert:
    kind: str
    message: str


def print_alert(alert: Alert):
    print(f"[{alert.kind.upper()}] {alert.message}", file=sys.stderr)


class AlertPresenter:
    """Shows at most one transient banner; a new one replaces the old."""

    def __init__(
        self,
        render: Callable[[Alert], None] = print_alert,
        clear: Optional[Callable[[Alert], None]] = None,
        delay: float = DEFAULT_DELAY,
    ):
        self.render = render
        self.clear = clear
        self.delay = delay
        self.current: Optional[Alert] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    def show(self, kind: str, message, delay: Optional[float] = None) -> Alert:
        if kind not in ALERT_KINDS:
            raise ValueError(f"Unknown alert kind: {kind}")
        self.hide()
        alert = Alert(kind, str(message))
        self.current = alert
        self.render(alert)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; alert stays until hidden")
        else:
            self._timer = loop.call_later(self.delay if delay is None else delay, self.hide)
        return alert

    def hide(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self.current is not None:
            if self.clear:
                self.clear(self.current)
            self.current = None
