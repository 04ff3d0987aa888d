"""
PartyRef -- tagged reference to the school or company a ledger belongs to.

Responsibility:
    Replaces a pair of nullable school/company foreign keys with a single
    tagged variant, so ledger scopes, documents and statements can be
    written once for both kinds of party.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Ledger direction:
    SCHOOL parties are customers: the ledger tracks money owed TO the
    business (receivable).  COMPANY parties are suppliers/dealers: the
    ledger tracks money owed BY the business (payable).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from billing_kernel.exceptions import InvalidPartyReferenceError


class PartyKind(str, Enum):
    """Kind of party a ledger scope belongs to."""

    SCHOOL = "school"
    COMPANY = "company"


class LedgerDirection(str, Enum):
    """Which way money flows on a party's ledger."""

    RECEIVABLE = "receivable"
    PAYABLE = "payable"


@dataclass(frozen=True)
class PartyRef:
    """Reference to exactly one school or company."""

    kind: PartyKind
    id: UUID

    @classmethod
    def school(cls, party_id: UUID) -> PartyRef:
        return cls(PartyKind.SCHOOL, party_id)

    @classmethod
    def company(cls, party_id: UUID) -> PartyRef:
        return cls(PartyKind.COMPANY, party_id)

    @classmethod
    def parse(cls, value: str) -> PartyRef:
        """
        Parse ``"school:<uuid>"`` / ``"company:<uuid>"``.

        Raises:
            InvalidPartyReferenceError: malformed kind or id.
        """
        kind_str, sep, id_str = value.partition(":")
        if not sep:
            raise InvalidPartyReferenceError(value)
        try:
            return cls(PartyKind(kind_str.strip().lower()), UUID(id_str.strip()))
        except ValueError:
            raise InvalidPartyReferenceError(value) from None

    @property
    def direction(self) -> LedgerDirection:
        if self.kind == PartyKind.SCHOOL:
            return LedgerDirection.RECEIVABLE
        return LedgerDirection.PAYABLE

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"
