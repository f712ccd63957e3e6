"""
CLI: subgraph -> Postgres (generación completa con swap atómico de schema).

Uso recomendado:
  - Ejecutar como job (cron/systemd timer).

Variables de entorno (ver subgraph_mirror.core.config.Settings):
  - DATABASE_URL (o DATABASE_HOST/PORT/USER/PASSWORD/NAME)
  - ENTITIES_FILE, TARGET_SCHEMA, SUBGRAPH_API_KEY
  - DB_BATCH_SIZE, DB_MAX_RETRIES, DB_INITIAL_RETRY_DELAY_S, SYNC_MAX_WORKERS

Ejecución:
  python scripts/sync_subgraph.py
  python scripts/sync_subgraph.py --schema-only
  python scripts/sync_subgraph.py --entities Builder,BackerStakingHistory
  python scripts/sync_subgraph.py --from-block 6500000
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

_REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_REPO_ROOT / ".env", override=False)

from subgraph_mirror.application.services import load_entity_model
from subgraph_mirror.application.use_cases import build_from_settings
from subgraph_mirror.core.config import Settings
from subgraph_mirror.core.events import configure_logging
from subgraph_mirror.infrastructure.database.schema_compiler import compile_schema
from subgraph_mirror.shared.exceptions import AppException


def _parse_entities(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    names = [name.strip() for name in raw.split(",") if name.strip()]
    return names or None


def main() -> int:
    parser = argparse.ArgumentParser(description="Sincroniza un subgraph a PostgreSQL.")
    parser.add_argument(
        "--schema-only",
        action="store_true",
        help="Solo imprime el DDL compilado (no se conecta a Postgres).",
    )
    parser.add_argument(
        "--entities",
        default=None,
        help="Lista de entidades separadas por coma (default: todas).",
    )
    parser.add_argument(
        "--from-block",
        type=int,
        default=None,
        help="Pasada incremental sobre el schema activo: solo entidades modificadas desde este bloque.",
    )
    parser.add_argument(
        "--entities-file",
        default=None,
        help="Archivo YAML de declaración (override de ENTITIES_FILE).",
    )
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings)

    try:
        model = load_entity_model(args.entities_file or settings.ENTITIES_FILE)

        if args.schema_only:
            for statement in compile_schema(model):
                print(f"{statement};")
            return 0

        use_cases = build_from_settings(settings, model)
        entities = _parse_entities(args.entities)

        if args.from_block is not None:
            handle = use_cases.active_handle(model)
            names = entities or [entity.name for entity in model.entities]
            written = use_cases.sync_entities(handle, names, block_number=args.from_block)
            logger.success(f"Pasada incremental OK: {sum(written.values())} filas desde el bloque {args.from_block}")
            return 0

        report = asyncio.run(use_cases.run_generation(model, entities))
    except KeyboardInterrupt:
        logger.warning("Sync interrumpido: la generación en construcción se descartó")
        return 130
    except AppException as e:
        logger.error(f"{e.error_code}: {e.message}")
        return 1

    if not report.promoted:
        for name, error in report.failures.items():
            logger.error(f"{name}: {error}")
        return 1

    if report.activation and not report.activation.retired_dropped:
        logger.warning(f"Schema retirado pendiente de limpieza: {report.activation.cleanup_error}")

    logger.info(
        f"Sync OK: generación {report.handle.generation_id}, {report.total_rows} filas, "
        f"bloque {report.handle.source_block}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
