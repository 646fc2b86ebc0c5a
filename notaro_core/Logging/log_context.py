"""
Structured loguru fields for sync traffic.

Two call sites set fields today:

* `NotaroDB.merge` tags every record it logs with ``sync_batch`` (a fresh
  `new_sync_id()`) and ``batch_size`` (number of incoming notes), so the
  per-note lines of one batch can be grouped after the fact.
* `SyncSession.receive` tags its lines with ``peer_id`` and ``message_type``
  (``PullRequest``, ``PullResponse``, ``PushUpdates`` or ``Ack``).

Fields land in ``record["extra"]`` for any sink, e.g.::

    with log_context(peer_id="laptop", message_type="PushUpdates") as log:
        log.info("Applying pushed changes")
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator
import uuid

from loguru import logger


def new_sync_id() -> str:
    """32-character hex id stored as ``sync_batch`` on one merge batch's log lines."""
    return uuid.uuid4().hex


@contextmanager
def log_context(**fields: Any) -> Iterator[Any]:
    """
    Attach `fields` to every loguru record emitted inside the block, including
    records from code that uses the module-level `logger`. Yields a logger bound
    to the same fields. A field passed as None is left out, so an anonymous
    session does not log ``peer_id=None``.
    """
    clean = {k: v for k, v in fields.items() if v is not None}
    with logger.contextualize(**clean):
        bound = logger.bind(**clean)
        yield bound
