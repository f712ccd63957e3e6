"""
Lectura del subgraph remoto (GraphQL sobre HTTP).

- query_builder: queries por entidad y composición en un único documento con alias
- subgraph_client: un POST por batch, demultiplexado por posición de request
- paginator: ventana por cursor id_gt + first sobre el cliente
"""
from .paginator import SubgraphPaginator
from .query_builder import RemoteQueryRequest, build_batch_query, create_entity_query, pluralize_entity_name
from .subgraph_client import BlockMeta, SubgraphClient, build_endpoint

__all__ = [
    "BlockMeta",
    "RemoteQueryRequest",
    "SubgraphClient",
    "SubgraphPaginator",
    "build_batch_query",
    "build_endpoint",
    "create_entity_query",
    "pluralize_entity_name",
]
