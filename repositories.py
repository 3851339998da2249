from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple
import asyncio
from collections import defaultdict

from models import AccountLedger, ClientId


class LedgerRepository(ABC):
    @abstractmethod
    def get_or_create(self, client_id: ClientId) -> AccountLedger:
        """Get the account for a client, opening an empty one on first reference."""
        pass

    @abstractmethod
    def get(self, client_id: ClientId) -> Optional[AccountLedger]:
        """Get account. Returns None if the client was never referenced."""
        pass

    @abstractmethod
    def accounts(self) -> List[Tuple[ClientId, AccountLedger]]:
        """All accounts in first-reference order."""
        pass

    @abstractmethod
    def accounts_count(self) -> int:
        """Get total number of accounts."""
        pass

    @abstractmethod
    def get_lock(self, client_id: ClientId) -> asyncio.Lock:
        """Get the single-writer lock for one account."""
        pass


class InMemoryLedgerRepository(LedgerRepository):
    def __init__(self):
        # dict keeps insertion order, which is the report order
        self.ledgers: Dict[ClientId, AccountLedger] = {}
        self.locks: Dict[ClientId, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get_or_create(self, client_id: ClientId) -> AccountLedger:
        account = self.ledgers.get(client_id)
        if account is None:
            account = AccountLedger()
            self.ledgers[client_id] = account
        return account

    def get(self, client_id: ClientId) -> Optional[AccountLedger]:
        return self.ledgers.get(client_id)

    def accounts(self) -> List[Tuple[ClientId, AccountLedger]]:
        return list(self.ledgers.items())

    def accounts_count(self) -> int:
        return len(self.ledgers)

    def get_lock(self, client_id: ClientId) -> asyncio.Lock:
        return self.locks[client_id]


def create_ledger_repository() -> LedgerRepository:
    """Fresh, empty ledger map for one processing run."""
    return InMemoryLedgerRepository()
