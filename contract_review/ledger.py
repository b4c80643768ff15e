"""Credit ledger primitives.

Every primitive works on a caller-owned :class:`Transaction`; the balance
change and the journal entry describing it are staged together, and nothing
is visible until the surrounding operation commits the action being paid for.
"""

from __future__ import annotations

import logging
from typing import Any

from contract_review.errors import AccountNotFound, InsufficientBalance
from contract_review.repositories.accounts import AccountsRepository
from contract_review.store import VersionedStore, utcnow_iso
from contract_review.transactions import Transaction

logger = logging.getLogger(__name__)


def _require_positive(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError(f"ledger amount must be a positive integer: {amount!r}")
    return amount


class Ledger:
    def __init__(self, accounts: AccountsRepository | None = None) -> None:
        self._accounts = accounts or AccountsRepository()

    @staticmethod
    def entry_key(account_id: str, seq: int) -> str:
        return f"ledger_entries/{account_id}/{seq:012d}"

    def _load(self, tx: Transaction, account_id: str) -> dict[str, Any]:
        account = self._accounts.get(tx, account_id)
        if account is None:
            raise AccountNotFound()
        return account

    def _apply(
        self,
        tx: Transaction,
        account: dict[str, Any],
        *,
        delta: int,
        reason: str,
        contract_id: str | None,
    ) -> dict[str, Any]:
        seq = int(account.get("ledger_seq", 0)) + 1
        account["credit_balance"] = int(account.get("credit_balance", 0)) + delta
        account["ledger_seq"] = seq
        self._accounts.put(tx, account)
        tx.create(
            self.entry_key(str(account["account_id"]), seq),
            {
                "entry_id": f"{account['account_id']}:{seq}",
                "account_id": account["account_id"],
                "seq": seq,
                "delta": delta,
                "balance_after": account["credit_balance"],
                "reason": reason,
                "contract_id": contract_id,
                "created_at": utcnow_iso(),
            },
        )
        return account

    def debit(
        self,
        tx: Transaction,
        account_id: str,
        amount: int,
        *,
        reason: str,
        contract_id: str | None = None,
    ) -> dict[str, Any]:
        amount = _require_positive(amount)
        account = self._load(tx, account_id)
        balance = int(account.get("credit_balance", 0))
        if balance < amount:
            raise InsufficientBalance(f"balance {balance} is below the required {amount} credits")
        return self._apply(tx, account, delta=-amount, reason=reason, contract_id=contract_id)

    def credit(
        self,
        tx: Transaction,
        account_id: str,
        amount: int,
        *,
        reason: str,
        contract_id: str | None = None,
    ) -> dict[str, Any]:
        amount = _require_positive(amount)
        account = self._load(tx, account_id)
        return self._apply(tx, account, delta=amount, reason=reason, contract_id=contract_id)

    def transfer(
        self,
        tx: Transaction,
        from_id: str,
        to_ids: list[str],
        *,
        total_amount: int,
        per_recipient: int,
        debit_reason: str,
        credit_reason: str,
        contract_id: str | None = None,
    ) -> dict[str, Any]:
        """Debit ``total_amount`` once and credit ``per_recipient`` to each recipient.

        Recipients that no longer have an account are skipped. With no
        recipients the debit still happens and nothing is distributed.
        """
        total_amount = _require_positive(total_amount)
        self._load(tx, from_id)
        recipients = list(dict.fromkeys(to_ids))
        existing = self._accounts.get_many(tx, recipients)
        self.debit(tx, from_id, total_amount, reason=debit_reason, contract_id=contract_id)
        credited: list[str] = []
        if per_recipient > 0:
            for recipient_id in recipients:
                if recipient_id not in existing:
                    logger.warning("ledger_transfer_recipient_missing account_id=%s", recipient_id)
                    continue
                self.credit(tx, recipient_id, per_recipient, reason=credit_reason, contract_id=contract_id)
                credited.append(recipient_id)
        return {
            "from_id": from_id,
            "debited": total_amount,
            "credited_ids": credited,
            "per_recipient": per_recipient if credited else 0,
        }

    def list_entries(self, store: VersionedStore, account_id: str) -> list[dict[str, Any]]:
        return [record.value for record in store.scan(f"ledger_entries/{account_id}/")]
