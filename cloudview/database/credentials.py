"""
Credential Resolver - decide which connection parameters a request uses.

Candidate sources are consulted in a fixed order and the first one holding a
complete set of all six parameters wins:

1. session     - the encrypted slot stored by an earlier request
2. environment - CLOUDVIEW_DB_* process variables
3. file        - the local override file (dotenv format, same keys)
4. request     - db_* fields supplied with the current request

A complete request-supplied set is written to the session slot before the
scan starts, so it is what tier 1 returns and later requests in the same
session reuse it. Partial sets are never merged across tiers. When nothing
resolves, the request runs against the default connection.
"""
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence

from dotenv import dotenv_values

from cloudview.core.config import ENV_CREDENTIAL_KEYS, Settings
from cloudview.core.crypto import CredentialCipher
from cloudview.core.exceptions import CredentialDecryptError, CredentialIncomplete
from cloudview.core.logging_config import get_logger, LoggerMixin
from cloudview.core.validators import sanitize_field

logger = get_logger(__name__)

FIELDS = ("driver", "host", "port", "database", "username", "password")

# Request field names, in FIELDS order
REQUEST_KEYS = (
    "db_connection",
    "db_host",
    "db_port",
    "db_database",
    "db_username",
    "db_password",
)

SESSION_SLOT = "cloudview.credentials"
DEFAULT_SOURCE = "default"


@dataclass(frozen=True)
class ConnectionParameters:
    """
    A complete set of connection parameters.

    Instances are hashable, so the connection manager keys its engine cache
    on the whole value: a cached engine is only ever reused for exactly the
    same driver, address, database and credentials.
    """
    driver: str
    host: str
    port: str
    database: str
    username: str
    password: str

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Any],
        keys: Sequence[str] = FIELDS,
        source: str = "mapping"
    ) -> "ConnectionParameters":
        """
        Build parameters from a mapping whose keys follow FIELDS order.

        Raises:
            CredentialIncomplete: If any of the six values is missing, blank or over-long
        """
        values: Dict[str, Optional[str]] = {}
        for field_name, key in zip(FIELDS, keys):
            raw = mapping.get(key)
            if field_name == "password":
                values[field_name] = None if raw in (None, "") else str(raw)
            else:
                values[field_name] = sanitize_field(raw)

        missing = [name for name, value in values.items() if value is None]
        if missing:
            raise CredentialIncomplete(source, missing)

        values["driver"] = values["driver"].lower()
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    def redacted(self) -> Dict[str, str]:
        """Parameters safe to log or return to a client."""
        values = self.to_dict()
        values["password"] = "***"
        return values

    def describe(self) -> str:
        return f"{self.driver}@{self.host}:{self.port}/{self.database}"


@dataclass
class RequestContext:
    """
    Everything the resolver may look at for one request.

    Attributes:
        payload: Request input (query parameters or body fields)
        session: The request's session mapping, or None if there is none
    """
    payload: Mapping[str, Any]
    session: Optional[MutableMapping[str, Any]] = None


@dataclass(frozen=True)
class Resolution:
    """
    Outcome of credential resolution.

    parameters is None when the default connection should be used.
    """
    parameters: Optional[ConnectionParameters]
    source: str
    persisted: bool = False

    @property
    def is_default(self) -> bool:
        return self.parameters is None


def parameters_from_request(payload: Mapping[str, Any]) -> ConnectionParameters:
    return ConnectionParameters.from_mapping(payload, REQUEST_KEYS, source="request")


class SessionCredentialStore:
    """The single encrypted credential slot kept in a session mapping."""

    def __init__(self, cipher: CredentialCipher, slot: str = SESSION_SLOT):
        self.cipher = cipher
        self.slot = slot

    def has_credentials(self, session: Mapping[str, Any]) -> bool:
        return self.slot in session

    def load(self, session: Mapping[str, Any]) -> ConnectionParameters:
        """
        Decrypt the stored set.

        Raises:
            CredentialIncomplete: If the slot is empty or holds a partial set
            CredentialDecryptError: If the slot cannot be decrypted
        """
        token = session.get(self.slot)
        if token is None:
            raise CredentialIncomplete("session")
        return ConnectionParameters.from_mapping(self.cipher.decrypt(token), source="session")

    def save(self, session: MutableMapping[str, Any], parameters: ConnectionParameters) -> None:
        # Last write wins when concurrent requests of one session store different sets
        session[self.slot] = self.cipher.encrypt(parameters.to_dict())

    def clear(self, session: MutableMapping[str, Any]) -> bool:
        return session.pop(self.slot, None) is not None


class CredentialSource:
    """One tier of the credential chain."""
    name = "source"

    def load(self, context: RequestContext) -> ConnectionParameters:
        """
        Return a complete parameter set.

        Raises:
            CredentialIncomplete: If this tier has nothing complete to offer
        """
        raise NotImplementedError


class SessionSource(CredentialSource):
    """Tier 1: previously stored, encrypted per-session credentials."""
    name = "session"

    def __init__(self, store: SessionCredentialStore):
        self.store = store

    def load(self, context: RequestContext) -> ConnectionParameters:
        if context.session is None:
            raise CredentialIncomplete(self.name)
        try:
            return self.store.load(context.session)
        except CredentialDecryptError as e:
            # Key rotation or tampering: drop the slot and keep resolving
            logger.warning(f"Discarding undecryptable session credentials: {e.message}")
            self.store.clear(context.session)
            raise CredentialIncomplete(self.name) from e


class EnvironmentSource(CredentialSource):
    """Tier 2: a full credential set from process configuration."""
    name = "environment"

    def __init__(self, values: Sequence[Optional[str]]):
        self.values = dict(zip(FIELDS, values))

    def load(self, context: RequestContext) -> ConnectionParameters:
        return ConnectionParameters.from_mapping(self.values, source=self.name)


class FileSource(CredentialSource):
    """
    Tier 3: a full credential set from a local override file.

    The file uses dotenv syntax with the CLOUDVIEW_DB_* keys and is re-read
    on every request, so edits apply without a restart.
    """
    name = "file"

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self, context: RequestContext) -> ConnectionParameters:
        if not self.path.is_file():
            raise CredentialIncomplete(self.name)
        values = dotenv_values(self.path)
        return ConnectionParameters.from_mapping(values, ENV_CREDENTIAL_KEYS, source=self.name)


class RequestSource(CredentialSource):
    """Tier 4: explicit fields supplied with the current request."""
    name = "request"

    def load(self, context: RequestContext) -> ConnectionParameters:
        return parameters_from_request(context.payload)


class CredentialResolver(LoggerMixin):
    """
    Sequential scan over credential sources.

    Example:
        >>> resolver = create_resolver(get_settings())
        >>> resolution = resolver.resolve(RequestContext(payload={}, session={}))
        >>> resolution.is_default
        True
    """

    def __init__(
        self,
        sources: List[CredentialSource],
        store: Optional[SessionCredentialStore] = None
    ):
        self.sources = sources
        self.store = store

    def resolve(self, context: RequestContext) -> Resolution:
        persisted = self._persist_request(context)

        for source in self.sources:
            try:
                parameters = source.load(context)
            except CredentialIncomplete as e:
                self.logger.debug(f"Credential source '{source.name}' skipped: {e.details or 'empty'}")
                continue

            self.logger.info(f"Using {source.name} credentials: {parameters.describe()}")
            return Resolution(parameters, source.name, persisted)

        self.logger.info("No complete credential set found; using default connection")
        return Resolution(None, DEFAULT_SOURCE, persisted)

    def forget(self, context: RequestContext) -> bool:
        """Clear the stored session slot. Returns True if one was stored."""
        if self.store is None or context.session is None:
            return False
        return self.store.clear(context.session)

    def _persist_request(self, context: RequestContext) -> bool:
        if self.store is None or context.session is None:
            return False
        try:
            parameters = parameters_from_request(context.payload)
        except CredentialIncomplete:
            return False

        self.store.save(context.session, parameters)
        self.logger.info(f"Stored request credentials in session: {parameters.describe()}")
        return True


def create_resolver(settings: Settings) -> CredentialResolver:
    """Build the standard four-tier resolver from settings."""
    store = SessionCredentialStore(CredentialCipher(settings.secret_key))
    return CredentialResolver(
        sources=[
            SessionSource(store),
            EnvironmentSource(settings.env_credentials),
            FileSource(settings.credentials_file),
            RequestSource(),
        ],
        store=store,
    )
