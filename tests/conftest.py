"""
Configuración de fixtures para pytest.

Los tests no usan una base de datos real: FakeDatabase imita la superficie
de psycopg que usa el código (connect / transaction / cursor) y registra
cada sentencia ejecutada por conexión.
"""
from __future__ import annotations

from typing import Any, Callable, List, Optional, Tuple

import pytest

from subgraph_mirror.domain.entities import EntityModel
from subgraph_mirror.infrastructure.database.schema_compiler import build_database_schema


Responder = Callable[[str, Any], Optional[dict]]


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self._last_row: Optional[dict] = None

    def execute(self, sql: str, params: Any = None) -> None:
        self._conn.executed.append((" ".join(sql.split()), params))
        self._conn.db.maybe_fail(self._conn.index, sql)
        self._last_row = self._conn.db.respond(sql, params)

    def executemany(self, sql: str, rows: Any) -> None:
        rows = list(rows)
        self._conn.executed_many.append((" ".join(sql.split()), rows))
        self._conn.db.maybe_fail(self._conn.index, sql)

    def fetchone(self) -> Optional[dict]:
        return self._last_row

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeTransaction:
    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn

    def __enter__(self) -> "FakeTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self._conn.committed = True
        else:
            self._conn.rolled_back = True
        return False


class FakeConnection:
    def __init__(self, db: "FakeDatabase", index: int) -> None:
        self.db = db
        self.index = index
        self.executed: List[Tuple[str, Any]] = []
        self.executed_many: List[Tuple[str, list]] = []
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)

    @property
    def statements(self) -> List[str]:
        return [sql for sql, _ in self.executed]

    def __enter__(self) -> "FakeConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.closed = True
        return False


class FakeDatabase:
    """
    Sustituto de PostgresDatabase.

    - existing_schemas: schemas visibles en pg_namespace
    - lock_available: resultado de pg_try_advisory_xact_lock
    - fail_rules: (índice de conexión | None, fragmento SQL, excepción) que
      hace fallar la sentencia que contenga el fragmento
    """

    def __init__(self) -> None:
        self.connections: List[FakeConnection] = []
        self.existing_schemas: set[str] = set()
        self.lock_available = True
        self.pointer_row: Optional[dict] = None
        self.fail_rules: List[Tuple[Optional[int], str, Exception]] = []

    def connect(self) -> FakeConnection:
        conn = FakeConnection(self, len(self.connections))
        self.connections.append(conn)
        return conn

    def fail_on(self, fragment: str, error: Exception, connection_index: Optional[int] = None) -> None:
        self.fail_rules.append((connection_index, fragment, error))

    def maybe_fail(self, index: int, sql: str) -> None:
        for conn_index, fragment, error in self.fail_rules:
            if (conn_index is None or conn_index == index) and fragment in sql:
                raise error

    def respond(self, sql: str, params: Any) -> Optional[dict]:
        if "pg_try_advisory_xact_lock" in sql:
            return {"locked": self.lock_available}
        if "pg_namespace" in sql:
            return {"present": params[0] in self.existing_schemas}
        if sql.lstrip().upper().startswith("SELECT TARGET_SCHEMA"):
            return self.pointer_row
        return None


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


def _rewards_declaration() -> dict:
    return {
        "sources": {
            "rewards": {"url": "https://gateway.example.com/api", "id": "abc123", "max_rows_per_request": 2},
        },
        "entities": [
            {
                "name": "Builder",
                "source": "rewards",
                "primary_key": ["id"],
                "columns": [
                    {"name": "id", "type": "Bytes"},
                    {"name": "isHalted", "type": "Boolean"},
                    {"name": "totalAllocation", "type": "BigInt"},
                    {"name": "backerToBuilders", "type": "BackerToBuilder", "references": ["builder"]},
                ],
            },
            {
                "name": "BuilderState",
                "source": "rewards",
                "primary_key": ["id"],
                "columns": [
                    {"name": "id", "type": "Bytes"},
                    {"name": "builder", "type": "Builder"},
                    {"name": "kycApproved", "type": "Boolean"},
                ],
            },
            {
                "name": "BackerToBuilder",
                "source": "rewards",
                "primary_key": ["id"],
                "columns": [
                    {"name": "id", "type": "Bytes"},
                    {"name": "builder", "type": "Builder"},
                    {"name": "totalAllocation", "type": "BigInt"},
                ],
            },
            {
                "name": "ContractConfig",
                "source": "rewards",
                "primary_key": ["id"],
                "strategy": "single",
                "columns": [
                    {"name": "id", "type": "Bytes"},
                    {"name": "builders", "type": ["Bytes"]},
                    {"name": "blockNumber", "type": "BigInt"},
                ],
            },
        ],
    }


@pytest.fixture
def rewards_declaration() -> dict:
    return _rewards_declaration()


@pytest.fixture
def rewards_model() -> EntityModel:
    return EntityModel.model_validate(_rewards_declaration())


@pytest.fixture
def rewards_schema(rewards_model):
    return build_database_schema(rewards_model)
