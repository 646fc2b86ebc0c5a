# sync_messages.py
# Description: Wire envelope exchanged between replicas during sync.
#
# Every message serializes as {"type": <variant name>, "payload": {...}}; `Ack`
# carries no payload and serializes as {"type": "Ack"}.
#
# Imports
from typing import Annotated, Any, List, Literal, Mapping, Union
#
# Third-Party Libraries
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
#
# Local Imports
from notaro_core.exceptions import SerializationFault
from notaro_core.Notes.note_models import MAX_VERSION, Note
#
########################################################################################################################
#
# Payloads:


class _Envelope(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class PullRequestPayload(_Envelope):
    since_version: int = Field(
        ..., ge=0, le=MAX_VERSION, description="Return records with version strictly greater than this"
    )


class PullResponsePayload(_Envelope):
    changes: List[Note] = Field(default_factory=list)
    current_version: int = Field(
        ..., ge=0, le=MAX_VERSION, description="Responder's highest stored version at response time"
    )


class PushUpdatesPayload(_Envelope):
    changes: List[Note] = Field(default_factory=list)

#
########################################################################################################################
#
# Messages:


class PullRequest(_Envelope):
    type: Literal["PullRequest"] = "PullRequest"
    payload: PullRequestPayload


class PullResponse(_Envelope):
    type: Literal["PullResponse"] = "PullResponse"
    payload: PullResponsePayload


class PushUpdates(_Envelope):
    type: Literal["PushUpdates"] = "PushUpdates"
    payload: PushUpdatesPayload


class Ack(_Envelope):
    type: Literal["Ack"] = "Ack"


SyncMessage = Annotated[
    Union[PullRequest, PullResponse, PushUpdates, Ack],
    Field(discriminator="type"),
]
SYNC_MESSAGE_TYPES = (PullRequest, PullResponse, PushUpdates, Ack)

_SYNC_MESSAGE_ADAPTER: TypeAdapter = TypeAdapter(SyncMessage)

#
########################################################################################################################
#
# Functions:


def pull_request(since_version: int) -> PullRequest:
    return PullRequest(payload=PullRequestPayload(since_version=since_version))


def pull_response(changes: List[Note], current_version: int) -> PullResponse:
    return PullResponse(payload=PullResponsePayload(changes=list(changes), current_version=current_version))


def push_updates(changes: List[Note]) -> PushUpdates:
    return PushUpdates(payload=PushUpdatesPayload(changes=list(changes)))


def ack() -> Ack:
    return Ack()


def dump_sync_message(message: SyncMessage) -> str:
    """Serialize a message to its JSON wire form."""
    if not isinstance(message, SYNC_MESSAGE_TYPES):
        raise SerializationFault(f"Not a sync message: {type(message).__name__}")
    return message.model_dump_json()


def parse_sync_message(data: Union[str, bytes, bytearray, Mapping[str, Any], SyncMessage]) -> SyncMessage:
    """
    Decode a sync message from JSON text, JSON bytes, or an already-decoded mapping.
    Message instances are returned unchanged.

    Raises:
        SerializationFault: On malformed JSON, an unknown ``type``, a missing or
                            extra field, or an invalid embedded note.
    """
    if isinstance(data, SYNC_MESSAGE_TYPES):
        return data
    try:
        if isinstance(data, (str, bytes, bytearray)):
            return _SYNC_MESSAGE_ADAPTER.validate_json(data)
        if isinstance(data, Mapping):
            return _SYNC_MESSAGE_ADAPTER.validate_python(dict(data))
    except ValidationError as e:
        raise SerializationFault(f"Malformed sync message: {e}") from e
    raise SerializationFault(f"Unsupported sync message input: {type(data).__name__}")

#
# End of sync_messages.py
#######################################################################################################################
