"""Transaction boundary shared by every mutating game operation.

Operations run one at a time under a process-wide lock, inside a single
database transaction. Events are written to the ``event`` table as part of
that transaction and broadcast over Socket.IO only after it commits, so a
failed call leaves neither state changes nor notifications behind.
"""

import json
import threading
from contextlib import contextmanager
from typing import Any, Dict, List

from flask import current_app

from guessgame import db, socketio
from guessgame.models import Account, Counter, Event

_ledger_lock = threading.RLock()


@contextmanager
def atomic():
    pending: List[Dict[str, Any]] = []
    with _ledger_lock:
        try:
            yield pending
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
    for data in pending:
        broadcast(data)


def emit(pending: List[Dict[str, Any]], game_id: int, name: str, **payload) -> None:
    payload['game_id'] = game_id
    db.session.add(Event(game_id=game_id, name=name, payload=json.dumps(payload)))
    pending.append(dict(payload, event=name))


def broadcast(data: Dict[str, Any]) -> None:
    game_id, name = data['game_id'], data['event']
    socketio.emit(name, data, to=f"game:{game_id}", namespace='/ws')
    socketio.emit('state_update', {'game_id': game_id, 'event': name}, namespace='/ws')
    current_app.logger.info(f"[event] game={game_id} {name}")


def next_value(name: str) -> int:
    """Return the current value of a named counter and advance it by one."""
    counter = db.session.get(Counter, name)
    if counter is None:
        counter = Counter(name=name, value=0)
        db.session.add(counter)
    value = counter.value
    counter.value = value + 1
    return value


def peek_value(name: str) -> int:
    counter = db.session.get(Counter, name)
    return counter.value if counter else 0


def lock_account(account) -> Account:
    """Re-read ``account`` (typically ``current_user``) inside the current transaction.

    The row is locked with ``SELECT ... FOR UPDATE`` where the backend supports it.
    """
    fresh = db.session.get(Account, account.id, populate_existing=True, with_for_update=True)
    if fresh is None:
        raise LookupError(f'Account {account.id} no longer exists')
    return fresh
