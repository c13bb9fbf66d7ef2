"""Account directory backed by the MongoDB ``admins`` collection."""

from __future__ import annotations

from typing import List

from models.account import Account
from refresher.utils.logger import get_logger

log = get_logger(__name__)

_PROJECTION = {"phone": 1, "password": 1, "name": 1, "status": 1, "alfaData.status": 1}


class MongoAccountDirectory:
    def __init__(self, collection) -> None:
        self._collection = collection
        self._last_count = None

    async def list_all_accounts(self) -> List[Account]:
        accounts: List[Account] = []
        cursor = self._collection.find({}, _PROJECTION)
        async for doc in cursor:
            account = Account.from_document(doc)
            if account is None:
                log.warning(f"[accounts] {doc.get('_id')} is missing phone or password, ignoring")
                continue
            accounts.append(account)

        if self._last_count != len(accounts):
            log.info(f"[accounts] found {len(accounts)} account(s) total")
            self._last_count = len(accounts)
        return accounts

    async def list_active_accounts(self) -> List[Account]:
        return [account for account in await self.list_all_accounts() if account.is_active]


__all__ = ["MongoAccountDirectory"]
