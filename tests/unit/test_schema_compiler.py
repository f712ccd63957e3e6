"""
Tests unitarios para el compilador de esquema (EntityModel -> DDL).
"""
from __future__ import annotations

import pytest

from subgraph_mirror.domain.entities import ColumnKind, EntityModel
from subgraph_mirror.infrastructure.database.schema_compiler import (
    MAX_IDENTIFIER_BYTES,
    build_database_schema,
    compile_schema,
    foreign_key_name,
    quote_ident,
)
from subgraph_mirror.shared.exceptions import SchemaError


def _model(*entities: dict) -> EntityModel:
    return EntityModel.model_validate({"entities": list(entities)})


class TestCompileSchema:
    """Tests para compile_schema()."""

    def test_statement_order_is_drop_create_foreign_keys(self, rewards_model) -> None:
        """Verifica el orden: un DROP, un CREATE por entidad y luego las FKs."""
        statements = compile_schema(rewards_model)

        assert len(statements) == 6
        assert statements[0].startswith("DROP TABLE IF EXISTS")
        assert all(s.startswith("CREATE TABLE IF NOT EXISTS") for s in statements[1:5])
        assert statements[5].startswith("ALTER TABLE")

    def test_drop_lists_every_table_with_cascade(self, rewards_model) -> None:
        """Verifica que el DROP incluye todas las tablas en orden de declaración."""
        statements = compile_schema(rewards_model)

        assert statements[0] == (
            'DROP TABLE IF EXISTS "Builder", "BuilderState", "BackerToBuilder", "ContractConfig" CASCADE'
        )

    def test_scalar_columns_are_mapped_and_not_null(self, rewards_model) -> None:
        """Verifica el mapeo de tipos escalares y el PRIMARY KEY."""
        builder_ddl = compile_schema(rewards_model)[1]

        assert builder_ddl == (
            'CREATE TABLE IF NOT EXISTS "Builder" ('
            '"id" BYTEA NOT NULL, "isHalted" BOOLEAN NOT NULL, "totalAllocation" TEXT NOT NULL, '
            'PRIMARY KEY ("id"))'
        )

    def test_derived_column_has_no_inline_definition(self, rewards_model) -> None:
        """Verifica que una columna con references no aparece en el CREATE."""
        builder_ddl = compile_schema(rewards_model)[1]

        assert "backerToBuilders" not in builder_ddl

    def test_relation_column_uses_referenced_primary_key_type(self, rewards_model) -> None:
        """Verifica que una relación se guarda con el tipo SQL del PK referenciado."""
        state_ddl = compile_schema(rewards_model)[2]

        assert '"builder" BYTEA NOT NULL' in state_ddl

    def test_array_column_is_typed_as_sql_array(self, rewards_model) -> None:
        """Verifica que [Bytes] se compila como BYTEA[]."""
        config_ddl = compile_schema(rewards_model)[4]

        assert '"builders" BYTEA[] NOT NULL' in config_ddl

    def test_foreign_key_targets_referenced_table(self, rewards_model) -> None:
        """Verifica la FK generada por la relación inversa."""
        fk = compile_schema(rewards_model)[5]

        assert fk == (
            'ALTER TABLE "BackerToBuilder" ADD CONSTRAINT "fk_BackerToBuilder_Builder_backerToBuilders" '
            'FOREIGN KEY ("builder") REFERENCES "Builder" ("id")'
        )

    def test_composite_primary_key(self) -> None:
        """Verifica un PRIMARY KEY de varias columnas."""
        model = _model(
            {
                "name": "Allocation",
                "primary_key": ["backer", "gauge"],
                "columns": [
                    {"name": "backer", "type": "Bytes"},
                    {"name": "gauge", "type": "Bytes"},
                    {"name": "amount", "type": "BigDecimal"},
                ],
            }
        )

        ddl = compile_schema(model)[1]

        assert 'PRIMARY KEY ("backer", "gauge")' in ddl
        assert '"amount" NUMERIC NOT NULL' in ddl

    def test_is_deterministic(self, rewards_model) -> None:
        """Verifica que el mismo modelo produce exactamente las mismas sentencias."""
        assert compile_schema(rewards_model) == compile_schema(rewards_model)

    def test_identifiers_escape_embedded_quotes(self) -> None:
        """Verifica el escape de comillas dobles en identificadores."""
        assert quote_ident('we"ird') == '"we""ird"'


class TestCompileSchemaErrors:
    """Modelos no resolubles: SchemaError y ninguna sentencia."""

    def test_unknown_column_type(self) -> None:
        """Verifica que un tipo desconocido falla la compilación completa."""
        model = _model(
            {"name": "Gauge", "primary_key": ["id"], "columns": [{"name": "id", "type": "Uuid"}]}
        )

        with pytest.raises(SchemaError, match="Tipo de columna inválido"):
            compile_schema(model)

    def test_reference_to_unknown_entity(self) -> None:
        """Verifica que references hacia una entidad inexistente falla."""
        model = _model(
            {
                "name": "Builder",
                "primary_key": ["id"],
                "columns": [
                    {"name": "id", "type": "Bytes"},
                    {"name": "states", "type": "BuilderState", "references": ["builder"]},
                ],
            }
        )

        with pytest.raises(SchemaError, match="no existe"):
            compile_schema(model)

    def test_references_unknown_column_on_target(self) -> None:
        """Verifica que references debe nombrar columnas de la entidad referenciada."""
        model = _model(
            {
                "name": "Builder",
                "primary_key": ["id"],
                "columns": [
                    {"name": "id", "type": "Bytes"},
                    {"name": "states", "type": "BuilderState", "references": ["owner"]},
                ],
            },
            {
                "name": "BuilderState",
                "primary_key": ["id"],
                "columns": [{"name": "id", "type": "Bytes"}, {"name": "builder", "type": "Builder"}],
            },
        )

        with pytest.raises(SchemaError, match="owner"):
            compile_schema(model)

    def test_missing_primary_key(self) -> None:
        """Verifica que una entidad sin PK falla."""
        model = _model({"name": "Cycle", "columns": [{"name": "id", "type": "Bytes"}]})

        with pytest.raises(SchemaError, match="primary key"):
            compile_schema(model)

    def test_primary_key_naming_unknown_column(self) -> None:
        """Verifica que el PK debe ser una columna almacenada."""
        model = _model(
            {"name": "Cycle", "primary_key": ["uid"], "columns": [{"name": "id", "type": "Bytes"}]}
        )

        with pytest.raises(SchemaError, match="uid"):
            compile_schema(model)

    def test_relation_to_composite_key_entity(self) -> None:
        """Verifica que no se puede referenciar una entidad con PK compuesto."""
        model = _model(
            {
                "name": "Allocation",
                "primary_key": ["backer", "gauge"],
                "columns": [{"name": "backer", "type": "Bytes"}, {"name": "gauge", "type": "Bytes"}],
            },
            {
                "name": "Claim",
                "primary_key": ["id"],
                "columns": [{"name": "id", "type": "Bytes"}, {"name": "allocation", "type": "Allocation"}],
            },
        )

        with pytest.raises(SchemaError, match="PK de una sola columna"):
            compile_schema(model)

    def test_empty_model(self) -> None:
        """Verifica que un modelo sin entidades no compila."""
        with pytest.raises(SchemaError):
            compile_schema(EntityModel(entities=[]))


class TestBuildDatabaseSchema:
    """Tests para la clasificación de columnas del esquema compilado."""

    def test_column_kinds(self, rewards_model) -> None:
        """Verifica SCALAR / RELATION / DERIVED / ARRAY."""
        schema = build_database_schema(rewards_model)

        assert schema.get("Builder").column("isHalted").kind is ColumnKind.SCALAR
        assert schema.get("Builder").column("backerToBuilders").kind is ColumnKind.DERIVED
        assert schema.get("BuilderState").column("builder").kind is ColumnKind.RELATION
        assert schema.get("ContractConfig").column("builders").kind is ColumnKind.ARRAY

    def test_stored_columns_exclude_derived(self, rewards_model) -> None:
        """Verifica que las columnas DERIVED no se almacenan."""
        schema = build_database_schema(rewards_model)

        names = [col.name for col in schema.get("Builder").stored_columns]
        assert names == ["id", "isHalted", "totalAllocation"]

    def test_get_unknown_entity_raises(self, rewards_model) -> None:
        """Verifica que get() sobre una entidad inexistente lanza SchemaError."""
        schema = build_database_schema(rewards_model)

        with pytest.raises(SchemaError):
            schema.get("Gauge")


class TestForeignKeyName:
    def test_short_name_is_unchanged(self) -> None:
        """Verifica el formato fk_<referenced>_<owner>_<column> cuando entra en el límite."""
        assert foreign_key_name("Builder", "BackerToBuilder", "backerToBuilders") == (
            "fk_Builder_BackerToBuilder_backerToBuilders"
        )

    def test_long_names_fit_postgres_limit_and_stay_distinct(self) -> None:
        """Verifica que un nombre largo se acorta a 63 bytes con un hash estable."""
        owner = "BackerRewardPercentageChangeHistoryEntry"
        first = foreign_key_name("GaugeRewardsDistributionCycleSnapshot", owner, "rewardPercentageChanges")
        second = foreign_key_name("GaugeRewardsDistributionCycleSnapshot", owner, "rewardPercentageChangesV2")

        assert len(first.encode("utf-8")) <= MAX_IDENTIFIER_BYTES
        assert len(second.encode("utf-8")) <= MAX_IDENTIFIER_BYTES
        assert first != second
        assert first == foreign_key_name("GaugeRewardsDistributionCycleSnapshot", owner, "rewardPercentageChanges")
