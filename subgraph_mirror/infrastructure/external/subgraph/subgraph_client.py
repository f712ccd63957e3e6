"""
Cliente HTTP del subgraph (GraphQL sobre POST, sin SDKs externos).

- Un POST por batch de requests
- Demultiplexado de la respuesta por posición del request
- Sin reintentos: los errores se propagan al caller, que decide si
  reintenta el batch completo
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests
from loguru import logger

from subgraph_mirror.domain.entities import SubgraphSource
from subgraph_mirror.infrastructure.external.subgraph.query_builder import (
    BLOCK_META_QUERY,
    RemoteQueryRequest,
    batch_alias,
    build_batch_query,
)
from subgraph_mirror.shared.exceptions import RemoteQueryError, TransportError


Record = Dict[str, Any]


@dataclass(frozen=True)
class BlockMeta:
    """Bloque indexado por el subgraph al momento de la consulta."""

    number: int
    hash: Optional[str]
    timestamp: Optional[int]
    deployment: Optional[str]
    has_indexing_errors: bool


def build_endpoint(source: SubgraphSource, api_key: Optional[str] = None) -> str:
    """
    Con API key: <url>/<api_key>/<id>
    Sin API key: <url>/subgraphs/name/<id>
    """
    base = source.url.rstrip("/")
    if api_key:
        return f"{base}/{api_key}/{source.id}"
    return f"{base}/subgraphs/name/{source.id}"


class SubgraphClient:
    def __init__(
        self,
        source: SubgraphSource,
        *,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout_s: float = 30,
    ) -> None:
        self._source = source
        self._endpoint = build_endpoint(source, api_key)
        self._timeout_s = timeout_s
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def max_rows_per_request(self) -> int:
        return self._source.max_rows_per_request

    def execute(self, requests_: Sequence[RemoteQueryRequest]) -> Dict[int, List[Record]]:
        """
        Ejecuta N requests en un único POST.

        Returns:
            {posición del request: filas}. Un alias ausente en la respuesta
            produce lista vacía; `data: null` produce lista vacía para todos.

        Raises:
            TransportError: fallo de conexión o status no 2xx
            RemoteQueryError: la respuesta trae `errors`
        """
        query = build_batch_query(requests_)
        logger.debug(f"Batch query a {self._endpoint} ({len(requests_)} requests)")

        data = self._post_query(query)
        if data is None:
            logger.warning(
                "Respuesta GraphQL sin data: el subgraph puede no estar desplegado o sincronizado"
            )
            return {index: [] for index in range(len(requests_))}

        results: Dict[int, List[Record]] = {}
        for index, request in enumerate(requests_):
            rows = data.get(batch_alias(request.entity_name, index)) or []
            results[index] = list(rows)
            logger.debug(f"Respuesta para {request.entity_name}[{index}]: {len(rows)} filas")
        return results

    def fetch_block_meta(self) -> BlockMeta:
        """Lee `_meta` del subgraph (bloque indexado y estado del deployment)."""
        data = self._post_query(BLOCK_META_QUERY)
        meta = (data or {}).get("_meta")
        if not meta or not meta.get("block"):
            raise RemoteQueryError([{"message": "Respuesta sin _meta.block"}], query=BLOCK_META_QUERY)

        block = meta["block"]
        timestamp = block.get("timestamp")
        return BlockMeta(
            number=int(block["number"]),
            hash=block.get("hash"),
            timestamp=int(timestamp) if timestamp is not None else None,
            deployment=meta.get("deployment"),
            has_indexing_errors=bool(meta.get("hasIndexingErrors")),
        )

    def _post_query(self, query: str) -> Optional[Dict[str, Any]]:
        """
        POST {"query": ...} y retorna `data` (None si vino null o ausente).
        """
        try:
            resp = self._session.post(
                self._endpoint,
                json={"query": query},
                headers={"Content-Type": "application/json"},
                timeout=self._timeout_s,
            )
        except requests.RequestException as e:
            raise TransportError(
                f"No se pudo conectar con el subgraph: {e}", endpoint=self._endpoint
            ) from e

        if not 200 <= resp.status_code < 300:
            raise TransportError(
                f"Subgraph request falló {resp.status_code}: {resp.text}",
                status=resp.status_code,
                endpoint=self._endpoint,
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise TransportError(
                f"Respuesta del subgraph no es JSON válido: {e}",
                status=resp.status_code,
                endpoint=self._endpoint,
            ) from e

        if not isinstance(payload, dict):
            raise TransportError(
                f"Respuesta del subgraph no es un objeto JSON: {type(payload).__name__}",
                status=resp.status_code,
                endpoint=self._endpoint,
            )

        if payload.get("errors"):
            logger.error(f"Query GraphQL que causó el error:\n{query}")
            raise RemoteQueryError(payload["errors"], query=query)

        return payload.get("data")
