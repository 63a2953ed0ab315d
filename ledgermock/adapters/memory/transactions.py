"""In-memory transaction storage."""

import logging

from ledgermock.core.crypto import SecureHash
from ledgermock.core.models import SignedTransaction
from ledgermock.core.ports import TransactionStoragePort

logger = logging.getLogger(__name__)


class MockTransactionStorage(TransactionStoragePort):
    """Transactions recorded by a mock node, kept for the life of the node."""

    def __init__(self) -> None:
        self._transactions: dict[SecureHash, SignedTransaction] = {}

    def add_transaction(self, transaction: SignedTransaction) -> bool:
        if transaction.id in self._transactions:
            logger.debug(f"Transaction {transaction.id} already recorded")
            return False
        self._transactions[transaction.id] = transaction
        return True

    def get_transaction(self, tx_id: SecureHash) -> SignedTransaction | None:
        return self._transactions.get(tx_id)

    def __len__(self) -> int:
        return len(self._transactions)
