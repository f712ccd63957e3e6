"""
Sincronizador subgraph -> PostgreSQL.
"""

__version__ = "1.0.0"
