"""Failover mail dispatch across several outbound transports.

Transports are tried in score order, lowest first. Each failure adds 1 to
the failing transport's score; scores halve every half_life seconds, so a
transport that stops failing drifts back toward the front.
"""

import logging
import math
import threading
import time
from typing import Callable, Protocol, Sequence

from auth.exceptions import MailDeliveryError
from auth.types import MailMessage

logger = logging.getLogger(__name__)

DEFAULT_HALF_LIFE_SECONDS = 600


class MailTransport(Protocol):
    """Anything that can deliver one message. Raises on failure."""

    identity: str

    def send(self, message: MailMessage) -> None: ...


class FailoverMailer:
    """Sends through the healthiest transport, falling back on failure."""

    def __init__(
        self,
        transports: Sequence[MailTransport],
        half_life_seconds: float = DEFAULT_HALF_LIFE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if not transports:
            raise ValueError("at least one mail transport is required")
        self._transports = list(transports)
        self.identities = [t.identity for t in self._transports]
        self.scores = [0.0] * len(self._transports)
        self._order = list(range(len(self._transports)))
        self._half_life = half_life_seconds
        self._clock = clock
        self._last_evaluated = clock()
        self._lock = threading.Lock()

    @property
    def order(self) -> list[str]:
        """Current try-order as transport identities."""
        with self._lock:
            return [self.identities[i] for i in self._order]

    def _reevaluate(self, failed: int) -> None:
        """Decay all scores by the time since the last failure, then penalize `failed`."""
        with self._lock:
            now = self._clock()
            elapsed = max(now - self._last_evaluated, 0.0)
            decay = math.pow(2.0, -elapsed / self._half_life)
            self.scores = [score * decay for score in self.scores]
            self.scores[failed] += 1
            # Stable sort: ties keep their current relative order
            self._order.sort(key=lambda i: self.scores[i])
            self._last_evaluated = now

    def send_mail(self, message: MailMessage) -> None:
        """Deliver message through the first transport that accepts it.

        Raises:
            MailDeliveryError: If every transport failed. Chained to the last error.
        """
        with self._lock:
            order = list(self._order)

        last_error: Exception | None = None
        for index in order:
            try:
                self._transports[index].send(message)
                return
            except Exception as e:
                logger.error(f"Failed to send email via mailer {self.identities[index]}: {e}")
                last_error = e
                self._reevaluate(index)

        raise MailDeliveryError(f"All {len(order)} mail transports failed") from last_error
