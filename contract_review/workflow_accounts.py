from __future__ import annotations

import logging
import uuid
from typing import Any

from contract_review.errors import AccountNotFound, Forbidden, InvalidStateTransition, ValidationFailed
from contract_review.models import IdentityContext, LedgerReason, Role
from contract_review.store import utcnow_iso
from contract_review.transactions import Transaction

logger = logging.getLogger(__name__)


def _positive_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationFailed("amount must be a positive integer")
    return amount


class WorkflowAccountsMixin:
    def create_account(
        self,
        *,
        role: str,
        display_name: str,
        email: str = "",
        account_id: str | None = None,
        credit_balance: int = 0,
        max_active_contracts: int | None = None,
    ) -> dict[str, Any]:
        """Create an account record; an opening balance is journaled as a top-up."""
        try:
            role_value = Role(role).value
        except ValueError:
            raise ValidationFailed(f"unknown role: {role}")
        display_name = self._require_text(display_name, "display_name")
        if isinstance(credit_balance, bool) or not isinstance(credit_balance, int) or credit_balance < 0:
            raise ValidationFailed("credit_balance must be a non-negative integer")
        account_id = (account_id or "").strip() or f"acct_{uuid.uuid4().hex[:12]}"

        account: dict[str, Any] = {
            "account_id": account_id,
            "display_name": display_name,
            "email": (email or "").strip(),
            "role": role_value,
            "credit_balance": 0,
            "ledger_seq": 0,
            "created_at": utcnow_iso(),
        }
        if role_value == Role.AUDITOR.value:
            limit = self.settings.default_max_active_contracts if max_active_contracts is None else max_active_contracts
            if limit < 1:
                raise ValidationFailed("max_active_contracts must be at least 1")
            account["max_active_contracts"] = int(limit)
            account["current_active_contracts"] = 0

        def fn(tx: Transaction) -> dict[str, Any]:
            if self.accounts.get(tx, account_id) is not None:
                raise InvalidStateTransition("account already exists", code="ACCOUNT_EXISTS")
            self.accounts.create(tx, dict(account))
            if credit_balance > 0:
                return self.ledger.credit(tx, account_id, credit_balance, reason=LedgerReason.TOP_UP.value)
            return dict(account)

        created = self._run("create_account", fn)
        logger.info("account_created account_id=%s role=%s", account_id, role_value)
        return created

    def register_account(self, identity: IdentityContext, **fields: Any) -> dict[str, Any]:
        self._require_role(identity, Role.ADMIN)
        return self.create_account(**fields)

    def add_credits(self, identity: IdentityContext, account_id: str, *, amount: int) -> dict[str, Any]:
        self._require_role(identity, Role.ADMIN)
        amount = _positive_amount(amount)

        def fn(tx: Transaction) -> dict[str, Any]:
            return self.ledger.credit(tx, account_id, amount, reason=LedgerReason.TOP_UP.value)

        account = self._run("add_credits", fn)
        logger.info("credits_added account_id=%s amount=%s admin_id=%s", account_id, amount, identity.account_id)
        return account

    def _require_self_or_admin(self, identity: IdentityContext, account_id: str) -> None:
        if not identity.is_admin and identity.account_id != account_id:
            raise Forbidden("account is only visible to its owner and admins")

    def get_account(self, identity: IdentityContext, account_id: str) -> dict[str, Any]:
        self._require_self_or_admin(identity, account_id)
        account = self.accounts.load(self.store, account_id)
        if account is None:
            raise AccountNotFound()
        return account

    def list_accounts(self, identity: IdentityContext, *, role: str | None = None) -> list[dict[str, Any]]:
        self._require_role(identity, Role.ADMIN)
        return self.accounts.list(self.store, role=role)

    def list_auditors(self, identity: IdentityContext) -> list[dict[str, Any]]:
        """Auditor directory for picking review targets; balances and email are never included."""
        self._require_role(identity, Role.CLIENT, Role.AUDITOR, Role.ADMIN)
        directory = []
        for row in self.accounts.list(self.store, role=Role.AUDITOR.value):
            limit = int(row.get("max_active_contracts", self.settings.default_max_active_contracts))
            active = int(row.get("current_active_contracts", 0))
            directory.append(
                {
                    "account_id": row["account_id"],
                    "display_name": row.get("display_name"),
                    "max_active_contracts": limit,
                    "current_active_contracts": active,
                    "available": active < limit,
                }
            )
        return directory

    def list_ledger_entries(self, identity: IdentityContext, account_id: str) -> list[dict[str, Any]]:
        self._require_self_or_admin(identity, account_id)
        if self.accounts.load(self.store, account_id) is None:
            raise AccountNotFound()
        return self.ledger.list_entries(self.store, account_id)
