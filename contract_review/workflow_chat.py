from __future__ import annotations

import logging
from typing import Any

from contract_review.errors import ContractNotFound, Forbidden, InvalidStateTransition
from contract_review.models import IdentityContext, LedgerReason, Role
from contract_review.transactions import Transaction

logger = logging.getLogger(__name__)


class WorkflowChatMixin:
    def send_chat_message(self, identity: IdentityContext, contract_id: str, *, text: str) -> dict[str, Any]:
        """Append a chat message; owner messages are paid and reward every assigned auditor.

        The fee, the rewards and the append commit together or not at all.
        """
        text = self._require_text(text, "text")

        def fn(tx: Transaction) -> dict[str, Any]:
            contract = self._contract_in_tx(tx, contract_id)
            auditors = list(contract.get("assigned_auditor_ids") or [])
            is_owner = contract.get("owner_id") == identity.account_id
            if not is_owner and identity.account_id not in auditors:
                raise Forbidden("only the contract owner and assigned auditors can chat on this contract")
            self.chat.read_head(tx, contract_id)

            billing: dict[str, Any] | None = None
            if is_owner:
                if not auditors and self.settings.chat_require_auditor:
                    raise InvalidStateTransition(
                        "no auditor is assigned to receive this message",
                        code="CHAT_NO_RECIPIENTS",
                    )
                billing = self.ledger.transfer(
                    tx,
                    identity.account_id,
                    auditors,
                    total_amount=self.settings.chat_cost,
                    per_recipient=self.settings.auditor_reward,
                    debit_reason=LedgerReason.CHAT_FEE.value,
                    credit_reason=LedgerReason.CHAT_REWARD.value,
                    contract_id=contract_id,
                )
            message = self.chat.append(
                tx,
                contract_id=contract_id,
                sender_id=identity.account_id,
                sender_role=Role.CLIENT.value if is_owner else Role.AUDITOR.value,
                text=text,
            )
            return {"seq": message["seq"], "billing": billing}

        result = self._run("send_chat_message", fn)
        message = self.chat.load_message(self.store, contract_id=contract_id, seq=int(result["seq"]))
        if result["billing"] is not None:
            logger.info(
                "chat_billed contract_id=%s sender_id=%s debited=%s rewarded=%s",
                contract_id,
                identity.account_id,
                result["billing"]["debited"],
                len(result["billing"]["credited_ids"]),
            )
        return {**(message or {}), "billing": result["billing"]}

    def list_chat_messages(self, identity: IdentityContext, contract_id: str) -> list[dict[str, Any]]:
        contract = self.contracts.load(self.store, contract_id)
        if contract is None:
            raise ContractNotFound()
        if contract.get("owner_id") != identity.account_id and identity.account_id not in (
            contract.get("assigned_auditor_ids") or []
        ):
            raise Forbidden("chat is visible to the contract owner and assigned auditors only")
        return self.chat.list_for_contract(self.store, contract_id=contract_id)
