import uuid

from .exceptions import AuthorizationError, ValidationError
from .logging import jlog
from .schemas import Client
from .storage import Datastore


def validate_client_id(client_id: object) -> str:
    if not isinstance(client_id, str) or not client_id:
        raise ValidationError({"client_id": ["Missing or invalid client_id."]})
    try:
        uuid.UUID(client_id)
    except ValueError:
        raise ValidationError({"client_id": ["Invalid Client ID format."]})
    return client_id


def resolve_client(datastore: Datastore, client_id: str, user_id: str) -> Client:
    """
    Resolve a client the user owns.

    Not found and owned-by-someone-else both raise the same AuthorizationError,
    so callers cannot confirm that a client id exists.
    """
    validate_client_id(client_id)
    if not user_id:
        raise AuthorizationError()

    client = datastore.get_client_by_id(client_id, user_id)
    if client is None:
        jlog(event="client_access_denied", severity="WARNING", client_id=client_id, user_id=user_id)
        raise AuthorizationError()

    jlog(event="client_resolved", client_id=client_id, user_id=user_id)
    return client
