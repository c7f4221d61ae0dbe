"""
Push notifications about commission progress (OneSignal REST API).

Delivery is best effort: notices are sent from background tasks created
after the database transaction has committed, and failures are only logged.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

import httpx

from roofcrm.config import settings

logger = logging.getLogger(__name__)

ONESIGNAL_API_URL = "https://onesignal.com/api/v1/notifications"


class NoticeKind(str, Enum):
    ELIGIBLE = "commission_eligible"
    APPROVED = "commission_approved"
    PAID = "commission_paid"


@dataclass(frozen=True)
class CommissionNotice:
    """A commission event to tell its owner about."""

    kind: NoticeKind
    user_id: int
    commission_id: int
    amount: Decimal
    lead_id: Optional[int] = None
    customer_name: Optional[str] = None

    @property
    def title(self) -> str:
        return {
            NoticeKind.ELIGIBLE: "Commission Eligible",
            NoticeKind.APPROVED: "Commission Approved",
            NoticeKind.PAID: "Commission Paid",
        }[self.kind]

    @property
    def message(self) -> str:
        job = self.customer_name or "a job"
        amount = f"${self.amount:,.2f}"
        if self.kind == NoticeKind.ELIGIBLE:
            return f"Your commission for {job} is now eligible for approval ({amount})"
        if self.kind == NoticeKind.APPROVED:
            return f"Your commission for {job} has been approved ({amount})"
        return f"Your commission for {job} has been paid ({amount})"


class PushNotifier:
    """Sends commission notices to users' devices via OneSignal."""

    def __init__(
        self,
        app_id: Optional[str] = None,
        api_key: Optional[str] = None,
        app_url: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.app_id = app_id
        self.api_key = api_key
        self.app_url = app_url
        self.timeout = timeout
        self._tasks: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.app_id and self.api_key)

    def build_payload(self, notice: CommissionNotice) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "app_id": self.app_id,
            "headings": {"en": notice.title},
            "contents": {"en": notice.message},
            "include_external_user_ids": [str(notice.user_id)],
            "data": {
                "type": notice.kind.value,
                "commission_id": notice.commission_id,
                "lead_id": notice.lead_id,
            },
        }
        if self.app_url:
            if notice.lead_id is not None:
                payload["url"] = f"{self.app_url}/admin/leads/{notice.lead_id}?tab=commissions"
            else:
                payload["url"] = self.app_url
        return payload

    async def send(self, notice: CommissionNotice) -> bool:
        """Deliver one notice. Returns False instead of raising on failure."""
        if not self.enabled:
            logger.debug(f"Push notifications disabled, skipping {notice.kind.value} for user {notice.user_id}")
            return False

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self.api_key}",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(ONESIGNAL_API_URL, json=self.build_payload(notice), headers=headers)
                response.raise_for_status()

            result = response.json()
            if not result.get("recipients"):
                logger.warning(f"Push {notice.kind.value} accepted but no devices matched user {notice.user_id}")
            else:
                logger.info(f"Push {notice.kind.value} sent to user {notice.user_id}")
            return True

        except httpx.HTTPError as e:
            logger.error(f"Failed to send push {notice.kind.value} to user {notice.user_id}: {e}")
            return False

    def notify(self, notices: Iterable[CommissionNotice]) -> List[asyncio.Task]:
        """
        Schedule delivery of notices without waiting for them.

        Must be called after commit; the returned tasks are only useful to
        tests that want to await delivery.
        """
        tasks = []
        for notice in notices:
            task = asyncio.create_task(self.send(notice))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)
        return tasks


def get_notifier() -> PushNotifier:
    """Notifier configured from settings."""
    return PushNotifier(
        app_id=settings.onesignal_app_id,
        api_key=settings.onesignal_api_key,
        app_url=settings.app_url,
    )
