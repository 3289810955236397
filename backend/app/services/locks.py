from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager
import threading
import weakref
import zlib

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from app.models.enums import SettlementStatus
from app.models.settlement import SettlementPeriod


_registry_lock = threading.Lock()
# Entries disappear once no caller holds or waits on the lock.
_settlement_locks: weakref.WeakValueDictionary[tuple[int, str], threading.Lock] = weakref.WeakValueDictionary()


def _process_lock(account_id: int, settlement_id: str) -> threading.Lock:
    key = (account_id, settlement_id)
    with _registry_lock:
        lock = _settlement_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _settlement_locks[key] = lock
        return lock


def advisory_key(account_id: int, settlement_id: str) -> int:
    # pg_advisory_xact_lock takes a signed bigint.
    digest = zlib.crc32(f"{account_id}:{settlement_id}".encode("utf-8"))
    return (account_id << 32 | digest) & 0x7FFFFFFFFFFFFFFF


@contextmanager
def settlement_lock(db: Session, account_id: int, settlement_id: str) -> Iterator[None]:
    """Serialize draw recalculation and reconciliation on one settlement.

    Callers commit inside the block. On PostgreSQL the advisory lock is
    transaction scoped and is released by that commit or a rollback.
    """
    lock = _process_lock(account_id, settlement_id)
    with lock:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {"key": advisory_key(account_id, settlement_id)},
            )
        yield


@contextmanager
def settlement_locks(db: Session, account_id: int, settlement_ids: Iterable[str]) -> Iterator[None]:
    with ExitStack() as stack:
        for settlement_id in sorted(set(settlement_ids)):
            stack.enter_context(settlement_lock(db, account_id, settlement_id))
        yield


def _open_settlement_ids(db: Session, account_id: int) -> set[str]:
    return set(
        db.scalars(
            select(SettlementPeriod.settlement_id).where(
                SettlementPeriod.account_id == account_id,
                SettlementPeriod.status == SettlementStatus.estimated,
            )
        ).all()
    )


@contextmanager
def open_settlement_locks(db: Session, account_id: int) -> Iterator[list[str]]:
    """Lock every open settlement of the account, re-checking once the locks are held.

    A settlement opened between the first read and the lock acquisition widens
    the set and the locks are taken again, so the block always runs with the
    full open set locked. Yields the locked ids.
    """
    lock_ids = _open_settlement_ids(db, account_id)
    while True:
        with settlement_locks(db, account_id, lock_ids):
            current = _open_settlement_ids(db, account_id)
            if current <= lock_ids:
                yield sorted(lock_ids)
                return
        lock_ids = lock_ids | current
