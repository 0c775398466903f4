"""Session storage - in-memory and DynamoDB-backed session stores."""

from __future__ import annotations

import asyncio
import itertools
import json
from typing import Any

import boto3  # type: ignore[reportMissingTypeStubs]

from .config import GatewayConfig
from .errors import SessionConflictError
from .models import Measurement, Session


class SessionStore:
    """In-memory store for sessions and their measurements.

    Enforces at most one session per Polar user id.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self._sessions_by_id: dict[int, Session] = {}
        self._sessions_by_polar_user: dict[int, Session] = {}
        self._measurements: dict[int, list[Measurement]] = {}

    async def find_by_polar_user_id(self, polar_user_id: int) -> Session | None:
        """Retrieve the session linked to a Polar user."""
        async with self._lock:
            return self._sessions_by_polar_user.get(polar_user_id)

    async def find_by_id(self, session_id: int) -> Session | None:
        """Retrieve a session by ID."""
        async with self._lock:
            return self._sessions_by_id.get(session_id)

    async def create(self, polar_token: str, polar_user_id: int) -> Session:
        """Create and store a new session.

        Raises:
            SessionConflictError: If a session already exists for the Polar user
        """
        async with self._lock:
            if polar_user_id in self._sessions_by_polar_user:
                raise SessionConflictError(polar_user_id)
            session = Session(
                id=next(self._ids), polar_user_id=polar_user_id, polar_token=polar_token
            )
            self._sessions_by_id[session.id] = session
            self._sessions_by_polar_user[polar_user_id] = session
        return session

    async def add_measurement(self, session_id: int, measurement: Measurement) -> None:
        """Append a measurement to a session."""
        async with self._lock:
            self._measurements.setdefault(session_id, []).append(measurement)

    async def list_measurements(self, session_id: int) -> list[Measurement]:
        """Return all measurements recorded for a session, oldest first."""
        async with self._lock:
            return list(self._measurements.get(session_id, []))


class DynamoSessionStore(SessionStore):
    """DynamoDB-backed implementation of the session store.

    Uses a single table keyed by ``pk``. The Polar user mapping is written with
    a conditional put, so the one-session-per-user invariant holds across
    processes sharing the table.
    """

    COUNTER_KEY = "counter:session"

    def __init__(
        self,
        table_name: str,
        *,
        region_name: str | None = None,
        boto3_resource: Any | None = None,
    ) -> None:
        super().__init__()
        self._table_name = table_name
        resource = boto3_resource or boto3.resource("dynamodb", region_name=region_name)  # type: ignore[reportUnknownMemberType]
        self._table = resource.Table(table_name)  # type: ignore[reportAttributeAccessIssue]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _session_key(session_id: int) -> str:
        return f"session:{session_id}"

    @staticmethod
    def _polar_user_key(polar_user_id: int) -> str:
        return f"polar_user:{polar_user_id}"

    @staticmethod
    def _measurements_key(session_id: int) -> str:
        return f"measurements:{session_id}"

    async def _put_item(
        self, pk: str, data: dict[str, Any], *, if_absent: bool = False
    ) -> None:
        item: dict[str, Any] = {"pk": pk, "data": json.dumps(data)}
        kwargs: dict[str, Any] = {"Item": item}
        if if_absent:
            kwargs["ConditionExpression"] = "attribute_not_exists(pk)"
        await asyncio.to_thread(self._table.put_item, **kwargs)  # type: ignore[reportUnknownMemberType,reportUnknownArgumentType]

    async def _get_item(self, pk: str) -> dict[str, Any] | None:
        response = await asyncio.to_thread(self._table.get_item, Key={"pk": pk})  # type: ignore[reportUnknownMemberType,reportUnknownArgumentType]
        item = response.get("Item")  # type: ignore[reportUnknownMemberType,reportUnknownVariableType]
        if item is None:
            return None
        return json.loads(item["data"])  # type: ignore[reportUnknownArgumentType]

    async def _delete_item(self, pk: str) -> None:
        await asyncio.to_thread(self._table.delete_item, Key={"pk": pk})  # type: ignore[reportUnknownMemberType,reportUnknownArgumentType]

    async def _next_session_id(self) -> int:
        response = await asyncio.to_thread(  # type: ignore[reportUnknownVariableType]
            self._table.update_item,  # type: ignore[reportUnknownMemberType,reportUnknownArgumentType]
            Key={"pk": self.COUNTER_KEY},
            UpdateExpression="ADD next_id :one",
            ExpressionAttributeValues={":one": 1},
            ReturnValues="UPDATED_NEW",
        )
        return int(response["Attributes"]["next_id"])  # type: ignore[reportUnknownArgumentType]

    def _is_conditional_check_failure(self, exc: Exception) -> bool:
        exceptions = self._table.meta.client.exceptions  # type: ignore[reportUnknownMemberType]
        return isinstance(exc, exceptions.ConditionalCheckFailedException)  # type: ignore[reportUnknownArgumentType]

    # ------------------------------------------------------------------
    # Serialization helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _serialize_session(session: Session) -> dict[str, Any]:
        return {
            "id": session.id,
            "polar_user_id": session.polar_user_id,
            "polar_token": session.polar_token,
        }

    @staticmethod
    def _deserialize_session(data: dict[str, Any]) -> Session:
        return Session(
            id=int(data["id"]),
            polar_user_id=int(data["polar_user_id"]),
            polar_token=data["polar_token"],
        )

    # ------------------------------------------------------------------
    # Overrides
    # ------------------------------------------------------------------

    async def find_by_polar_user_id(self, polar_user_id: int) -> Session | None:
        mapping = await self._get_item(self._polar_user_key(polar_user_id))
        if mapping is None:
            return None
        return await self.find_by_id(int(mapping["session_id"]))

    async def find_by_id(self, session_id: int) -> Session | None:
        data = await self._get_item(self._session_key(session_id))
        if data is None:
            return None
        return self._deserialize_session(data)

    async def create(self, polar_token: str, polar_user_id: int) -> Session:
        session_id = await self._next_session_id()
        try:
            await self._put_item(
                self._polar_user_key(polar_user_id),
                {"session_id": session_id},
                if_absent=True,
            )
        except Exception as exc:
            if self._is_conditional_check_failure(exc):
                raise SessionConflictError(polar_user_id) from exc
            raise

        session = Session(id=session_id, polar_user_id=polar_user_id, polar_token=polar_token)
        try:
            await self._put_item(self._session_key(session_id), self._serialize_session(session))
        except Exception:
            # Undo the user mapping, it would point at a missing session
            await self._delete_item(self._polar_user_key(polar_user_id))
            raise
        return session

    async def add_measurement(self, session_id: int, measurement: Measurement) -> None:
        await asyncio.to_thread(  # type: ignore[reportUnknownVariableType]
            self._table.update_item,  # type: ignore[reportUnknownMemberType,reportUnknownArgumentType]
            Key={"pk": self._measurements_key(session_id)},
            # "items" is a DynamoDB reserved word
            UpdateExpression="SET #items = list_append(if_not_exists(#items, :empty), :new)",
            ExpressionAttributeNames={"#items": "items"},
            ExpressionAttributeValues={
                ":empty": [],
                ":new": [measurement.model_dump_json()],
            },
        )

    async def list_measurements(self, session_id: int) -> list[Measurement]:
        response = await asyncio.to_thread(  # type: ignore[reportUnknownVariableType]
            self._table.get_item,  # type: ignore[reportUnknownMemberType,reportUnknownArgumentType]
            Key={"pk": self._measurements_key(session_id)},
        )
        item = response.get("Item")  # type: ignore[reportUnknownMemberType,reportUnknownVariableType]
        if item is None:
            return []
        return [Measurement.model_validate_json(raw) for raw in item.get("items", [])]  # type: ignore[reportUnknownMemberType,reportUnknownVariableType]


def create_session_store(config: GatewayConfig) -> SessionStore:
    """Instantiate the session store selected by configuration."""
    if config.session_backend == "dynamodb":
        if not config.session_table:
            raise ValueError("SESSION_TABLE must be set when SESSION_BACKEND=dynamodb.")
        return DynamoSessionStore(
            table_name=config.session_table,
            region_name=config.aws_region,
        )
    return SessionStore()
