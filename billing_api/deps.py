"""Request dependencies shared by the billing routers."""

from typing import Generator
from uuid import UUID

from fastapi import Header, Request
from sqlalchemy.orm import Session

from billing_kernel.db.engine import get_session
from billing_kernel.domain.clock import Clock
from billing_kernel.domain.party import PartyRef


def get_actor_id(x_actor_id: UUID = Header(..., alias="X-Actor-Id")) -> UUID:
    return x_actor_id


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_read_session() -> Generator[Session, None, None]:
    """Session for read-only endpoints.  Rolled back, never committed."""
    session = get_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def parse_party(value: str) -> PartyRef:
    return PartyRef.parse(value)
