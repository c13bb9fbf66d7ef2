"""Refresh schedule: which accounts are due, ordered by deadline."""

from __future__ import annotations

from typing import Dict, List, Optional

from models.account import Account, DueAccount, ScheduleEntry
from refresher.core.clock import SystemClock
from refresher.core.errors import ScheduleIndexUnavailable
from refresher.core.interfaces import AccountDirectory, Clock, ScheduleIndex, SessionStore
from refresher.utils.logger import get_logger

log = get_logger(__name__)


class RefreshScheduleStore:
    """Deadline-ordered view over the schedule index.

    When the ordered index is unreachable or yields nothing live, due
    accounts are found by a linear scan of individually stored session data.
    """

    def __init__(
        self,
        index: ScheduleIndex,
        directory: AccountDirectory,
        sessions: SessionStore,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self.index = index
        self.directory = directory
        self.sessions = sessions
        self.clock = clock or SystemClock()

    async def upsert(self, account_id: str, deadline: int) -> None:
        await self.index.add(account_id, int(deadline))

    async def remove(self, account_id: str) -> None:
        await self.index.remove(account_id)
        await self.index.delete_deadline(account_id)

    async def due_before(self, timestamp: int) -> List[ScheduleEntry]:
        members = await self.index.range_by_score(float("-inf"), timestamp)
        entries = [ScheduleEntry(account_id=member, deadline=score) for member, score in members]
        entries.sort(key=lambda entry: entry.deadline)
        return entries

    async def earliest(self) -> Optional[ScheduleEntry]:
        head = await self.index.first()
        if head is None:
            return None
        member, score = head
        return ScheduleEntry(account_id=member, deadline=score)

    async def scan_due(self, now: Optional[int] = None) -> List[DueAccount]:
        now = self.clock.now_ms() if now is None else now
        accounts = await self.directory.list_active_accounts()
        by_id: Dict[str, Account] = {account.account_id: account for account in accounts}

        due: List[DueAccount] = []
        index_down = False
        try:
            entries = await self.due_before(now)
        except ScheduleIndexUnavailable as exc:
            log.warning(f"[schedule] ordered index unavailable ({exc.message}), using linear scan")
            entries = []
            index_down = True

        for entry in entries:
            account = by_id.get(entry.account_id)
            if account is None:
                log.info(f"[schedule] pruning stale entry {entry.account_id}")
                await self.index.remove(entry.account_id)
                continue
            due.append(DueAccount(account=account, deadline=entry.deadline))

        if not due:
            if not index_down:
                log.info("[schedule] ordered index returned nothing due, checking individual keys")
            due = await self._linear_scan(accounts, now)

        due.sort(key=lambda item: item.deadline)
        if due:
            log.info(f"[schedule] {len(due)} account(s) due for refresh")
        return due

    async def _linear_scan(self, accounts: List[Account], now: int) -> List[DueAccount]:
        due: List[DueAccount] = []
        for account in accounts:
            session = await self.sessions.get(account.account_id)
            if session is None:
                due.append(DueAccount(account=account, deadline=now))
                continue

            next_refresh = session.next_refresh_ts
            if not session.has_cookies:
                # A pushed-back deadline still holds for accounts that never logged in.
                if next_refresh is None or next_refresh <= now:
                    due.append(DueAccount(account=account, deadline=next_refresh or now))
                continue

            expiry = session.expiry_ts
            if (
                (next_refresh is not None and next_refresh <= now)
                or (expiry is not None and expiry <= now)
                or self.sessions.is_expired(session.cookies)
            ):
                deadline = next_refresh or expiry or now
                due.append(DueAccount(account=account, deadline=deadline))
        return due

    async def earliest_deadline(self) -> Optional[int]:
        """Earliest pending deadline among active accounts.

        Individual keys are consulted when the index is empty or down.
        """
        accounts = await self.directory.list_active_accounts()
        active = {account.account_id for account in accounts}
        try:
            entries = await self.due_before(float("inf"))
        except ScheduleIndexUnavailable as exc:
            log.warning(f"[schedule] earliest query failed ({exc.message}), using individual keys")
            entries = []
        for entry in entries:
            if entry.account_id in active:
                return entry.deadline

        earliest: Optional[int] = None
        for account in accounts:
            deadline = await self.index.get_deadline(account.account_id)
            if deadline is not None and (earliest is None or deadline < earliest):
                earliest = deadline
        return earliest


__all__ = ["RefreshScheduleStore"]
