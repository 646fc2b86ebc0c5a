# Sync_Library.py
# Description: Sync protocol responders and per-peer sync sessions on top of NotaroDB.
#
"""
Sync_Library.py
---------------

`SyncProtocolHandler` answers sync messages against one local store:

    PullRequest  -> PullResponse (delta since the requested version)
    PushUpdates  -> merge, then Ack
    PullResponse -> merge, no reply
    Ack          -> no effect, no reply

`SyncSession` wraps a handler for one remote peer and keeps the watermarks
the engine itself does not track: the highest remote version pulled so far and
the highest local version the peer has acknowledged.

Watermarks compare per-record versions, not a global sequence, so a record
edited fewer times than others may sit at or below a watermark and be skipped by
later deltas. Resetting a session's watermarks to 0 forces a full resync, which
is always safe because merge is idempotent.
"""
# Imports
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union, assert_never
#
# Third-Party Libraries
from loguru import logger
#
# Local Imports
from notaro_core.DB_Management.Notaro_DB import NotaroDB
from notaro_core.Logging.log_context import log_context
from notaro_core.Sync.sync_messages import (
    Ack,
    PullRequest,
    PullResponse,
    PushUpdates,
    SyncMessage,
    ack,
    dump_sync_message,
    parse_sync_message,
    pull_request,
    pull_response,
    push_updates,
)
#
########################################################################################################################
#
# Classes:

RawSyncMessage = Union[SyncMessage, str, bytes, Mapping[str, Any]]


@dataclass(frozen=True)
class PeerWatermarks:
    peer_id: str
    pulled_version: int
    pushed_version: int
    pending_push_version: Optional[int] = None


class SyncProtocolHandler:
    """Stateless responder: applies one incoming message to the local store."""

    def __init__(self, db: NotaroDB):
        self.db = db

    def handle(self, message: RawSyncMessage) -> Optional[SyncMessage]:
        """
        Apply `message` and return the reply to send back, if any.

        Raises:
            SerializationFault: If a raw message cannot be decoded.
            StorageFault: If the store fails; merges are rolled back whole.
        """
        message = parse_sync_message(message)
        if isinstance(message, PullRequest):
            since = message.payload.since_version
            # Read the version before the delta so a concurrent write can only
            # lower the advertised watermark, never skip a record.
            current = self.db.current_version()
            changes = self.db.changes_since(since)
            logger.debug(f"Answering pull since v{since} with {len(changes)} change(s), current v{current}.")
            return pull_response(changes, current)
        elif isinstance(message, PullResponse):
            self.db.merge(message.payload.changes)
            return None
        elif isinstance(message, PushUpdates):
            self.db.merge(message.payload.changes)
            return ack()
        elif isinstance(message, Ack):
            return None
        else:
            assert_never(message)


class SyncSession:
    """
    One local store's view of a single remote peer.

    Usage:
        session = SyncSession(local_db, peer_id="laptop")
        reply = remote.handle(session.build_pull_request())
        session.receive(reply)
        ack = remote.handle(session.build_push())
        session.receive(ack)
    """

    def __init__(self, db: NotaroDB, peer_id: str, *, pulled_version: int = 0, pushed_version: int = 0):
        if not isinstance(peer_id, str) or not peer_id.strip():
            raise ValueError("peer_id must be a non-empty string.")
        self.db = db
        self.peer_id = peer_id.strip()
        self.pulled_version = pulled_version
        self.pushed_version = pushed_version
        self._pending_push_version: Optional[int] = None
        self._handler = SyncProtocolHandler(db)

    def __repr__(self) -> str:
        return (
            f"SyncSession(peer_id={self.peer_id!r}, pulled_version={self.pulled_version}, "
            f"pushed_version={self.pushed_version})"
        )

    def watermarks(self) -> PeerWatermarks:
        return PeerWatermarks(
            peer_id=self.peer_id,
            pulled_version=self.pulled_version,
            pushed_version=self.pushed_version,
            pending_push_version=self._pending_push_version,
        )

    def reset(self) -> None:
        """Forget both watermarks so the next exchange is a full resync."""
        self.pulled_version = 0
        self.pushed_version = 0
        self._pending_push_version = None
        logger.info(f"Reset sync watermarks for peer '{self.peer_id}'.")

    def build_pull_request(self) -> PullRequest:
        return pull_request(self.pulled_version)

    def build_push(self) -> PushUpdates:
        """
        Collect local changes the peer has not acknowledged. The watermark only
        advances once the matching `Ack` arrives.
        """
        pending = self.db.current_version()
        changes = self.db.changes_since(self.pushed_version)
        self._pending_push_version = pending
        logger.debug(
            f"Pushing {len(changes)} change(s) to '{self.peer_id}' "
            f"(since v{self.pushed_version}, pending v{pending})."
        )
        return push_updates(changes)

    def receive(self, message: RawSyncMessage) -> Optional[SyncMessage]:
        """Apply a message from the peer and return the reply, if any."""
        message = parse_sync_message(message)
        with log_context(peer_id=self.peer_id, message_type=message.type) as log:
            reply = self._handler.handle(message)
            if isinstance(message, PullResponse):
                self.pulled_version = max(self.pulled_version, message.payload.current_version)
                log.info(
                    f"Pulled {len(message.payload.changes)} change(s); "
                    f"pulled_version is now {self.pulled_version}."
                )
            elif isinstance(message, Ack):
                if self._pending_push_version is None:
                    log.warning("Received Ack with no push outstanding; ignoring.")
                else:
                    self.pushed_version = max(self.pushed_version, self._pending_push_version)
                    self._pending_push_version = None
                    log.info(f"Push acknowledged; pushed_version is now {self.pushed_version}.")
            return reply

    def sync_with(self, remote: SyncProtocolHandler) -> PeerWatermarks:
        """
        Run one pull-then-push round against an in-process responder, passing
        every message through its JSON wire form.
        """
        response = remote.handle(dump_sync_message(self.build_pull_request()))
        if response is not None:
            self.receive(dump_sync_message(response))
        reply = remote.handle(dump_sync_message(self.build_push()))
        if reply is not None:
            self.receive(dump_sync_message(reply))
        return self.watermarks()

#
# End of Sync_Library.py
#######################################################################################################################
