from __future__ import annotations

import uuid
from typing import Any

from contract_review.store import ServerTimestamp, VersionedStore
from contract_review.transactions import Transaction


class ChatMessagesRepository:
    """Append-only chat log, one stream per contract.

    Every append reads and rewrites the stream head, so concurrent appends to
    the same contract serialize on the head version. Sequence numbers come
    from the head and timestamps are resolved by the store at commit time,
    clamped to the head's last timestamp.
    """

    @staticmethod
    def head_key(contract_id: str) -> str:
        return f"chat_streams/{contract_id}"

    @staticmethod
    def message_key(contract_id: str, seq: int) -> str:
        return f"chat_messages/{contract_id}/{seq:012d}"

    def read_head(self, tx: Transaction, contract_id: str) -> dict[str, Any]:
        head = tx.get(self.head_key(contract_id))
        if head is None:
            return {"contract_id": contract_id, "last_seq": 0, "last_timestamp": None}
        return head

    def append(
        self,
        tx: Transaction,
        *,
        contract_id: str,
        sender_id: str,
        sender_role: str,
        text: str,
    ) -> dict[str, Any]:
        head = self.read_head(tx, contract_id)
        seq = int(head.get("last_seq", 0)) + 1
        stamp = ServerTimestamp(not_before=head.get("last_timestamp"))
        message = {
            "message_id": f"msg_{uuid.uuid4().hex[:12]}",
            "contract_id": contract_id,
            "sender_id": sender_id,
            "sender_role": sender_role,
            "text": text,
            "seq": seq,
            "timestamp": stamp,
        }
        tx.create(self.message_key(contract_id, seq), message)
        tx.set(
            self.head_key(contract_id),
            {"contract_id": contract_id, "last_seq": seq, "last_timestamp": stamp},
        )
        return message

    def list_for_contract(self, store: VersionedStore, *, contract_id: str) -> list[dict[str, Any]]:
        rows = [record.value for record in store.scan(f"chat_messages/{contract_id}/")]
        return sorted(rows, key=lambda row: (str(row.get("timestamp") or ""), int(row.get("seq", 0))))

    def load_message(self, store: VersionedStore, *, contract_id: str, seq: int) -> dict[str, Any] | None:
        row, _version = store.read(self.message_key(contract_id, seq))
        return row
