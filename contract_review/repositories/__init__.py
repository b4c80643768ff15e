from contract_review.repositories.accounts import AccountsRepository
from contract_review.repositories.chat_messages import ChatMessagesRepository
from contract_review.repositories.contracts import ContractsRepository
from contract_review.repositories.idempotency import IdempotencyRepository, fingerprint
from contract_review.repositories.public_reports import PublicReportsRepository
from contract_review.repositories.review_requests import ReviewRequestsRepository

__all__ = [
    "AccountsRepository",
    "ChatMessagesRepository",
    "ContractsRepository",
    "IdempotencyRepository",
    "PublicReportsRepository",
    "ReviewRequestsRepository",
    "fingerprint",
]
