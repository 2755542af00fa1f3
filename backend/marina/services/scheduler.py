"""Client for the external appointment scheduler (Calendly).

Only cancellation is needed here: when a customer cancels or deletes a
booked repair, the matching scheduled event is cancelled upstream.
"""
from __future__ import annotations
import logging
from typing import Optional
import httpx
from marina.errors import UpstreamFailure

logger = logging.getLogger(__name__)


class CalendlyScheduler:
    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    @staticmethod
    def event_uuid(ref: str) -> str:
        """Accept either a bare event id or a full scheduled_events URI."""
        return ref.rstrip('/').rsplit('/', 1)[-1]

    def cancel_event(self, ref: str, reason: Optional[str] = None) -> bool:
        if not self.enabled:
            logger.info('Scheduler token not configured; skipping cancellation of %s', ref)
            return False
        uuid = self.event_uuid(ref)
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.token}"},
                transport=self.transport,
            ) as client:
                response = client.post(f"/scheduled_events/{uuid}/cancellation", json={"reason": reason or ""})
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamFailure(f'scheduler cancellation failed for {uuid}: {e}') from e
        logger.info('Cancelled scheduled event %s', uuid)
        return True

__all__ = ['CalendlyScheduler']
