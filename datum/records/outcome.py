"""Per-record result of a batch decryption."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from datum.crypto.errors import EncryptionError, ErrorKind
from datum.models.transaction import Transaction


class DecryptionOutcome(BaseModel):
    """
    Success or failure for one stored record.

    Exactly one of ``transaction`` / ``error_kind`` is set. A dashboard
    renders failures as a "could not decrypt" placeholder rather than
    dropping them.
    """

    index: int = Field(..., ge=0, description="Position in the input batch")
    record_id: Optional[UUID] = None
    transaction: Optional[Transaction] = None
    error_kind: Optional[ErrorKind] = None
    error_field: Optional[str] = None
    error_message: Optional[str] = None

    @model_validator(mode='after')
    def exactly_one_result(self) -> 'DecryptionOutcome':
        if (self.transaction is None) == (self.error_kind is None):
            raise ValueError("Outcome must carry either a transaction or an error kind")
        return self

    @property
    def ok(self) -> bool:
        return self.transaction is not None

    @property
    def user_message(self) -> Optional[str]:
        """What the UI shows in place of a failed record."""
        if self.ok:
            return None
        for error_cls in EncryptionError.__subclasses__():
            if error_cls.kind == self.error_kind:
                return error_cls.user_message
        return EncryptionError.user_message

    @classmethod
    def success(cls, index: int, transaction: Transaction) -> "DecryptionOutcome":
        return cls(index=index, record_id=transaction.id, transaction=transaction)

    @classmethod
    def failure(
        cls,
        index: int,
        record_id: Optional[UUID],
        error: EncryptionError,
    ) -> "DecryptionOutcome":
        return cls(
            index=index,
            record_id=record_id,
            error_kind=error.kind or ErrorKind.MAPPING_FAILURE,
            error_field=error.field,
            error_message=str(error),
        )
