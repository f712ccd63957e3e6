"""
Tests unitarios para RecordNormalizer.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping

from subgraph_mirror.application.services.record_normalizer import RecordNormalizer, hex_to_bytes


def _normalize(schema, entity_name: str, record: Mapping[str, Any]) -> Dict[str, Any]:
    table = schema.get(entity_name)
    row = RecordNormalizer(table).to_row(record)
    return dict(zip([col.name for col in table.stored_columns], row))


class TestRecordNormalizer:
    def test_unknown_fields_are_dropped(self, rewards_schema) -> None:
        """Verifica que los campos que la tabla no guarda se descartan."""
        row = _normalize(
            rewards_schema,
            "Builder",
            {"id": "0x01", "isHalted": False, "totalAllocation": "5", "__typename": "Builder", "extra": 1},
        )

        assert set(row) == {"id", "isHalted", "totalAllocation"}

    def test_derived_field_is_dropped(self, rewards_schema) -> None:
        """Verifica que una relación inversa presente en el record no se escribe."""
        row = _normalize(
            rewards_schema,
            "Builder",
            {"id": "0x01", "isHalted": False, "totalAllocation": "5", "backerToBuilders": [{"id": "0x02"}]},
        )

        assert "backerToBuilders" not in row

    def test_relation_object_is_replaced_by_id(self, rewards_schema) -> None:
        """Verifica que {"id": ...} se reduce al id (Bytes -> bytes)."""
        row = _normalize(rewards_schema, "BuilderState", {"id": "0x0a", "builder": {"id": "0xbeef"}, "kycApproved": True})

        assert row["builder"] == b"\xbe\xef"

    def test_relation_none_and_bare_id_pass_through(self, rewards_schema) -> None:
        """Verifica que None y un id plano no se transforman en objetos."""
        assert _normalize(rewards_schema, "BuilderState", {"id": "0x0a", "builder": None})["builder"] is None
        assert _normalize(rewards_schema, "BuilderState", {"id": "0x0a", "builder": "0xbeef"})["builder"] == b"\xbe\xef"

    def test_missing_columns_become_none(self, rewards_schema) -> None:
        """Verifica que una columna ausente en el record queda en None."""
        row = _normalize(rewards_schema, "Builder", {"id": "0x01"})

        assert row == {"id": b"\x01", "isHalted": None, "totalAllocation": None}

    def test_bytes_array_items_are_converted(self, rewards_schema) -> None:
        """Verifica la conversión hex -> bytes en arrays de Bytes."""
        row = _normalize(rewards_schema, "ContractConfig", {"id": "0x01", "builders": ["0x0a", "0x0b"], "blockNumber": "12"})

        assert row["builders"] == [b"\x0a", b"\x0b"]
        assert row["blockNumber"] == "12"

    def test_rows_follow_stored_column_order(self, rewards_schema) -> None:
        """Verifica que to_rows respeta el orden de columnas almacenadas."""
        normalizer = RecordNormalizer(rewards_schema.get("Builder"))

        rows = normalizer.to_rows([{"totalAllocation": "7", "isHalted": True, "id": "0x01"}])

        assert rows == [(b"\x01", True, "7")]


class TestHexToBytes:
    def test_odd_length_is_left_padded(self) -> None:
        """Verifica que un hex de largo impar se completa con un cero."""
        assert hex_to_bytes("0xabc") == b"\x0a\xbc"

    def test_without_prefix(self) -> None:
        """Verifica que el prefijo 0x es opcional."""
        assert hex_to_bytes("ff00") == b"\xff\x00"
