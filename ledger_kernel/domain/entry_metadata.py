"""
Entry metadata -- closed, versioned variant attached to journal entries.

Responsibility:
    Describes where a journal entry came from without an open-ended
    key/value bag.  Exactly three shapes exist:

        SourceDocumentMetadata  -- posted on behalf of an invoice, expense,
                                   payment, payroll run, ...
        ReversalMetadata        -- the entry reverses another entry
        OpeningBalanceMetadata  -- the entry posts a staged opening balance

    Each serializes to a JSON object carrying ``kind`` and
    ``schema_version``; ``load_entry_metadata`` refuses anything else.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ValueError on an unknown kind, an unsupported schema version, or a
      payload with missing fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Union
from uuid import UUID

SCHEMA_VERSION = 1


@dataclass(frozen=True)
class SourceDocumentMetadata:
    """Entry generated from a business document owned by another module."""

    KIND: ClassVar[str] = "source_document"

    document_kind: str
    document_id: UUID
    number: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.KIND,
            "schema_version": SCHEMA_VERSION,
            "document_kind": self.document_kind,
            "document_id": str(self.document_id),
            "number": self.number,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceDocumentMetadata:
        return cls(
            document_kind=data["document_kind"],
            document_id=UUID(data["document_id"]),
            number=data.get("number"),
        )


@dataclass(frozen=True)
class ReversalMetadata:
    """Entry that mirrors and cancels an earlier entry."""

    KIND: ClassVar[str] = "reversal"

    original_entry_id: UUID
    original_entry_number: str
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.KIND,
            "schema_version": SCHEMA_VERSION,
            "original_entry_id": str(self.original_entry_id),
            "original_entry_number": self.original_entry_number,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReversalMetadata:
        return cls(
            original_entry_id=UUID(data["original_entry_id"]),
            original_entry_number=data["original_entry_number"],
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class OpeningBalanceMetadata:
    """Entry that posts one staged opening balance."""

    KIND: ClassVar[str] = "opening_balance"

    opening_balance_id: UUID
    customer_id: UUID | None = None
    vendor_id: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.KIND,
            "schema_version": SCHEMA_VERSION,
            "opening_balance_id": str(self.opening_balance_id),
            "customer_id": str(self.customer_id) if self.customer_id else None,
            "vendor_id": str(self.vendor_id) if self.vendor_id else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OpeningBalanceMetadata:
        customer_id = data.get("customer_id")
        vendor_id = data.get("vendor_id")
        return cls(
            opening_balance_id=UUID(data["opening_balance_id"]),
            customer_id=UUID(customer_id) if customer_id else None,
            vendor_id=UUID(vendor_id) if vendor_id else None,
        )


EntryMetadata = Union[
    SourceDocumentMetadata,
    ReversalMetadata,
    OpeningBalanceMetadata,
]

_VARIANTS: dict[str, type] = {
    SourceDocumentMetadata.KIND: SourceDocumentMetadata,
    ReversalMetadata.KIND: ReversalMetadata,
    OpeningBalanceMetadata.KIND: OpeningBalanceMetadata,
}


def dump_entry_metadata(metadata: EntryMetadata | None) -> dict[str, Any] | None:
    """Serialize a metadata variant for the JSON column."""
    if metadata is None:
        return None
    if not isinstance(metadata, tuple(_VARIANTS.values())):
        raise ValueError(
            f"Unsupported entry metadata type: {type(metadata).__name__}"
        )
    return metadata.to_dict()


def load_entry_metadata(data: dict[str, Any] | None) -> EntryMetadata | None:
    """
    Rebuild a metadata variant from its serialized form.

    Raises:
        ValueError: Unknown kind, unsupported schema_version, or missing
            fields.
    """
    if data is None:
        return None
    kind = data.get("kind")
    variant = _VARIANTS.get(kind)
    if variant is None:
        raise ValueError(f"Unknown entry metadata kind: {kind!r}")
    version = data.get("schema_version")
    if version != SCHEMA_VERSION:
        raise ValueError(
            f"Unsupported schema_version {version!r} for entry metadata "
            f"kind {kind!r}"
        )
    try:
        return variant.from_dict(data)
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed {kind} entry metadata: {exc}") from exc
