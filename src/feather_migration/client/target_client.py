"""FeatherPanel client for importing Pterodactyl data.

This client wraps the Pterodactyl importer API of FeatherPanel: session
and permission checks, the clean-panel prerequisite check, the settings
update, and one import endpoint per entity kind.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx

from feather_migration.client.base_client import BaseAPIClient, extract_error_message
from feather_migration.client.exceptions import APIError, AuthorizationError
from feather_migration.config import TargetConfig
from feather_migration.utils.logging import get_logger

logger = get_logger(__name__)

SESSION_ENDPOINT = "/api/user/session"
IMPORTER_PREFIX = "/api/admin/pterodactyl-importer"
ADMIN_PERMISSION = "admin.root"


@dataclass(frozen=True)
class ImportEndpoint:
    """Where an entity kind is posted and where its assigned id comes back."""

    path: str
    id_path: tuple[str, ...]


IMPORT_ENDPOINTS: dict[str, ImportEndpoint] = {
    "location": ImportEndpoint("locations", ("location", "id")),
    "realm": ImportEndpoint("realms", ("realm", "id")),
    "spell": ImportEndpoint("spells", ("spell", "id")),
    "node": ImportEndpoint("nodes", ("node", "id")),
    "database_host": ImportEndpoint("database-hosts", ("database_id",)),
    "allocation": ImportEndpoint("allocations", ("allocation", "id")),
    "user": ImportEndpoint("users", ("user", "id")),
    "ssh_key": ImportEndpoint("ssh-keys", ("ssh_key", "id")),
    "server": ImportEndpoint("servers", ("server", "id")),
    "database": ImportEndpoint("databases", ("database", "id")),
    "backup": ImportEndpoint("backups", ("backup", "id")),
    "subuser": ImportEndpoint("subusers", ("subuser", "id")),
    "schedule": ImportEndpoint("schedules", ("schedule", "id")),
    "task": ImportEndpoint("tasks", ("task", "id")),
}


@dataclass(frozen=True)
class ImportResult:
    """Outcome of one import call."""

    success: bool
    assigned_id: int | None = None
    error_message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionInfo:
    username: str
    email: str | None
    permissions: tuple[str, ...]

    @property
    def is_admin(self) -> bool:
        return ADMIN_PERMISSION in self.permissions


@dataclass(frozen=True)
class PrerequisiteReport:
    """Entity counts of the target panel before a fresh migration."""

    users_count: int = 0
    nodes_count: int = 0
    locations_count: int = 0
    realms_count: int = 0
    spells_count: int = 0
    servers_count: int = 0
    databases_count: int = 0
    allocations_count: int = 0
    panel_clean: bool = False

    @property
    def blocking_counts(self) -> dict[str, int]:
        """Counts that prevent a migration (more than one user, anything else)."""
        blocking = {
            name: count
            for name, count in (
                ("nodes", self.nodes_count),
                ("locations", self.locations_count),
                ("realms", self.realms_count),
                ("spells", self.spells_count),
                ("servers", self.servers_count),
                ("databases", self.databases_count),
                ("allocations", self.allocations_count),
            )
            if count > 0
        }
        if self.users_count > 1:
            blocking["users"] = self.users_count
        return blocking

    @property
    def is_acceptable(self) -> bool:
        return self.panel_clean and not self.blocking_counts


def _dig(data: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _as_id(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _as_data(response: dict[str, Any]) -> dict[str, Any]:
    data = response.get("data")
    return data if isinstance(data, dict) else {}


def _envelope_failed(response: dict[str, Any]) -> bool:
    return bool(response.get("error")) or not response.get("success", False)


class FeatherPanelClient(BaseAPIClient):
    """Client for the FeatherPanel admin and importer API."""

    def __init__(
        self,
        config: TargetConfig,
        rate_limit: int = 20,
        log_payloads: bool = False,
        max_payload_size: int = 10000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the FeatherPanel client.

        Args:
            config: Target panel configuration
            rate_limit: Maximum requests per second
            log_payloads: Enable request/response payload logging
            max_payload_size: Maximum payload size to log before truncation
            transport: Optional httpx transport (used by tests)
        """
        super().__init__(
            base_url=config.url,
            token=config.api_key,
            verify_ssl=config.verify_ssl,
            timeout=config.timeout,
            rate_limit=rate_limit,
            log_payloads=log_payloads,
            max_payload_size=max_payload_size,
            transport=transport,
        )

    async def get_session(self) -> SessionInfo:
        """Return the user the API key belongs to.

        Raises:
            AuthenticationError: If the API key is rejected
            APIError: If the response cannot be understood
        """
        response = await self.get(SESSION_ENDPOINT)
        data = _as_data(response)
        user_info = data.get("user_info") or {}

        if _envelope_failed(response) or not user_info:
            raise APIError(
                f"Invalid session response: {extract_error_message(response)}",
                response=response,
            )

        session = SessionInfo(
            username=str(user_info.get("username", "")),
            email=user_info.get("email"),
            permissions=tuple(data.get("permissions") or ()),
        )
        logger.info("target_session_loaded", username=session.username, admin=session.is_admin)
        return session

    async def ensure_admin(self) -> SessionInfo:
        """Return the session, requiring the root admin permission.

        Raises:
            AuthorizationError: If the user lacks ``admin.root``
        """
        session = await self.get_session()
        if not session.is_admin:
            raise AuthorizationError(
                f"User '{session.username}' does not have the {ADMIN_PERMISSION} permission "
                "required for migration"
            )
        return session

    async def check_prerequisites(self) -> PrerequisiteReport:
        """Fetch the entity counts of the target panel.

        Raises:
            APIError: If the check fails or returns no data
        """
        response = await self.get(f"{IMPORTER_PREFIX}/prerequisites")
        data = response.get("data")

        if _envelope_failed(response) or not isinstance(data, dict):
            raise APIError(
                f"Prerequisites check failed: {extract_error_message(response)}",
                response=response,
            )

        report = PrerequisiteReport(
            users_count=int(data.get("users_count", 0)),
            nodes_count=int(data.get("nodes_count", 0)),
            locations_count=int(data.get("locations_count", 0)),
            realms_count=int(data.get("realms_count", 0)),
            spells_count=int(data.get("spells_count", 0)),
            servers_count=int(data.get("servers_count", 0)),
            databases_count=int(data.get("databases_count", 0)),
            allocations_count=int(data.get("allocations_count", 0)),
            panel_clean=bool(data.get("panel_clean", False)),
        )
        logger.info(
            "target_prerequisites_checked",
            acceptable=report.is_acceptable,
            blocking=report.blocking_counts,
        )
        return report

    async def update_settings(self, settings: dict[str, str]) -> ImportResult:
        """Send the migrated panel settings.

        Returns:
            Result whose ``data`` holds the ``updated_settings`` list
        """
        try:
            response = await self.patch(f"{IMPORTER_PREFIX}/settings", json_data=settings)
        except APIError as e:
            logger.warning("settings_update_rejected", status_code=e.status_code, error=e.message)
            return ImportResult(success=False, error_message=self._api_error_message(e))

        if _envelope_failed(response):
            return ImportResult(success=False, error_message=extract_error_message(response))

        return ImportResult(success=True, data=_as_data(response))

    async def import_entity(self, kind: str, payload: dict[str, Any]) -> ImportResult:
        """Import one entity.

        HTTP errors and unsuccessful envelopes are returned as an unsuccessful
        result. Transport errors propagate as ``NetworkError``.

        Args:
            kind: Target entity kind (``location``, ``realm``, ``spell`` ...)
            payload: Request body, carrying the source id to preserve

        Returns:
            The import result with the id the panel assigned

        Raises:
            ValueError: If the kind has no import endpoint
        """
        endpoint = IMPORT_ENDPOINTS.get(kind)
        if endpoint is None:
            raise ValueError(f"No import endpoint for entity kind: {kind}")

        try:
            response = await self.post(f"{IMPORTER_PREFIX}/{endpoint.path}", json_data=payload)
        except APIError as e:
            logger.warning(
                "import_rejected",
                kind=kind,
                status_code=e.status_code,
                error=e.message,
            )
            return ImportResult(success=False, error_message=self._api_error_message(e))

        if _envelope_failed(response):
            return ImportResult(
                success=False,
                error_message=extract_error_message(response),
                data=_as_data(response),
            )

        data = _as_data(response)
        assigned_id = _as_id(_dig(data, endpoint.id_path))
        if assigned_id is None:
            logger.warning("import_id_missing", kind=kind)

        return ImportResult(success=True, assigned_id=assigned_id, data=data)

    @staticmethod
    def _api_error_message(error: APIError) -> str:
        if isinstance(error.response, dict):
            message = extract_error_message(error.response)
            if message != "Unknown error":
                return message
        return error.message
