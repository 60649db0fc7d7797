from __future__ import annotations


class CreditServiceError(Exception):
    """Base exception for credit-service internals. Never crosses the service boundary."""


class CreditStoreError(CreditServiceError):
    """Any failure of the underlying store (connection, write, transaction commit)."""


class ConcurrentGrantUpdateError(CreditStoreError):
    """A grant's remaining balance changed between read and conditional write."""

    def __init__(self, grant_id: str | None, expected_remaining: int) -> None:
        super().__init__(
            f"grant {grant_id} changed concurrently (expected remaining={expected_remaining})"
        )
        self.grant_id = grant_id
        self.expected_remaining = expected_remaining


class BonusAlreadyClaimedError(CreditServiceError):
    """Raised inside the bonus transaction to abort it when the claim flag is already set."""
