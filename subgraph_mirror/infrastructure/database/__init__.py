"""
Acceso a PostgreSQL: compilador de DDL, gestión de namespaces y escritura de filas.
"""
