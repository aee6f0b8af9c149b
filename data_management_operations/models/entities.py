"""
Data Entities

Defines the models for documents and operation results in data management.
Provides structured representations of document identities, version tokens,
decoded records and per-item bulk outcomes, along with detailed operation results.

Typical usage from external projects:

    from data_management_operations import BulkResult, TypedRecord

    record = dao.get("order-1")
    if record is not None:
        print(record.value, record.version.seq_no)

    result = dao.bulk(build)
    print(f"{result.successful_count} items succeeded")
    print(f"Success rate: {result.success_rate:.2f}%")
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from data_management_operations.data_ops_exceptions import BatchPartialFailureError
from data_management_operations.utils.timing import TimingResult

# Type variable for the decoded domain type
T = TypeVar('T')


class OperationStatus(str, Enum):
    """
    Enumeration of possible statuses for data operations.

    This provides a standardized way to track and report the status of
    data operations across the system.
    """
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"  # For bulk batches where some items succeeded and some failed
    NOT_FOUND = "not_found"


class BulkOperationType(str, Enum):
    """The four write kinds a bulk batch can carry."""
    INDEX = "index"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class DocumentIdentity(BaseModel):
    """The (index, id) pair naming a document."""
    model_config = ConfigDict(frozen=True)

    index: str
    id: str

    def __str__(self) -> str:
        return f"{self.index}/{self.id}"


class DocumentVersion(BaseModel):
    """
    Optimistic concurrency token of a stored document.

    The engine advances it on every successful write. It is compared only
    for equality and is valid as a precondition for a single write attempt.
    """
    model_config = ConfigDict(frozen=True)

    seq_no: int
    primary_term: int

    @classmethod
    def from_response(cls, response: Any) -> Optional["DocumentVersion"]:
        """Read the token from a get/index/delete response or a search hit, if present."""
        seq_no = response.get("_seq_no")
        primary_term = response.get("_primary_term")
        if seq_no is None or primary_term is None:
            return None
        return cls(seq_no=seq_no, primary_term=primary_term)

    def as_params(self) -> Dict[str, int]:
        """Request parameters that condition a write on this version."""
        return {"if_seq_no": self.seq_no, "if_primary_term": self.primary_term}


@dataclass
class TypedRecord(Generic[T]):
    """
    A decoded document as returned by a read.

    The caller owns the record; the DAO keeps no reference to it.
    """
    identity: DocumentIdentity
    version: DocumentVersion
    value: T

    @property
    def id(self) -> str:
        return self.identity.id


class IndexResult(BaseModel):
    """
    Result of a single-document write.

    Attributes:
        identity: Identity of the written document (with the server id when generated)
        version: Version token after the write
        result: Engine result string ("created" or "updated")
    """
    status: OperationStatus = OperationStatus.SUCCESS
    identity: DocumentIdentity
    version: DocumentVersion
    result: str
    timing: Optional[TimingResult] = Field(None, description="Performance timing result for the operation.")


class DeleteResult(BaseModel):
    """
    Result of a delete operation.

    Deleting an identity with no document is not an error: the status is
    NOT_FOUND and no version is reported.
    """
    status: OperationStatus
    identity: DocumentIdentity
    version: Optional[DocumentVersion] = None
    timing: Optional[TimingResult] = Field(None, description="Performance timing result for the operation.")

    @property
    def deleted(self) -> bool:
        return self.status == OperationStatus.SUCCESS


@dataclass
class BulkItem:
    """
    One write requested inside a bulk batch.

    ``source`` holds the encoded document to send. An update without a
    source carries a ``transform`` instead, which is applied to the stored
    value read when the batch is submitted.
    """
    op_type: BulkOperationType
    doc_id: Optional[str]
    version: Optional[DocumentVersion] = None
    source: Optional[bytes] = None
    transform: Optional[Callable[[Any], Any]] = None


class BulkItemError(BaseModel):
    """Failure reported by the engine for a single bulk item."""
    status: int
    type: Optional[str] = None
    reason: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.status} {self.type}: {self.reason}"


class BulkOutcome(BaseModel):
    """
    Outcome of one bulk item, in the same position as the submitted item.

    Exactly one of ``version`` (success) or ``error`` (failure) is set.
    """
    position: int
    op_type: BulkOperationType
    doc_id: Optional[str] = None
    status: int
    result: Optional[str] = None
    version: Optional[DocumentVersion] = None
    error: Optional[BulkItemError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def failed(self) -> bool:
        return self.error is not None


class BulkResult(BaseModel):
    """
    Result of a bulk batch.

    This provides detailed information about the success or failure of
    each item in a batch, allowing for precise error handling and
    reporting. Per-item failures never raise; ``raise_for_failures``
    converts them into a BatchPartialFailureError on demand.
    """
    status: OperationStatus = OperationStatus.SUCCESS
    outcomes: List[BulkOutcome] = Field(default_factory=list)
    took_ms: Optional[int] = None
    timing: Optional[TimingResult] = Field(None, description="Performance timing result for the operation.")

    @classmethod
    def from_outcomes(cls, outcomes: List[BulkOutcome], took_ms: Optional[int] = None) -> "BulkResult":
        failed = sum(1 for o in outcomes if o.failed)
        if failed == 0:
            status = OperationStatus.SUCCESS
        elif failed == len(outcomes):
            status = OperationStatus.FAILED
        else:
            status = OperationStatus.PARTIAL
        return cls(status=status, outcomes=outcomes, took_ms=took_ms)

    @property
    def successful_count(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def total_count(self) -> int:
        """Total number of items processed in this batch."""
        return len(self.outcomes)

    @property
    def success_rate(self) -> float:
        """Success rate as a percentage."""
        if self.total_count == 0:
            return 0.0
        return (self.successful_count / self.total_count) * 100

    @property
    def failures(self) -> List[BulkOutcome]:
        return [o for o in self.outcomes if o.failed]

    def raise_for_failures(self) -> "BulkResult":
        """
        Raise BatchPartialFailureError if any item failed, otherwise return self.

        Raises:
            BatchPartialFailureError: With counts, failed ids and per-position errors
        """
        failures = self.failures
        if failures:
            raise BatchPartialFailureError(
                f"{len(failures)} of {self.total_count} bulk items failed",
                successful_count=self.total_count - len(failures),
                failed_count=len(failures),
                failed_ids=[o.doc_id for o in failures],
                error_details={o.position: str(o.error) for o in failures}
            )
        return self
