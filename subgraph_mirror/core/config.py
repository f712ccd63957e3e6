"""
Configuracion central del sincronizador.
Gestiona variables de entorno y valores por defecto.
"""
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings

from subgraph_mirror.infrastructure.database.connection import normalize_psycopg_dsn


class Settings(BaseSettings):
    """
    Clase de configuracion del sincronizador.
    Lee variables de entorno (o .env) y proporciona valores por defecto.

    - DATABASE_URL se puede especificar completa o por componentes
    - TARGET_SCHEMA es el nombre del schema activo que leen los consumidores
    - DB_* controla el tamaño de batch y los reintentos del UPSERT
    """

    # Configuracion de la aplicacion
    APP_NAME: str = Field(default="subgraph-mirror")
    APP_VERSION: str = Field(default="1.0.0")
    ENVIRONMENT: str = Field(default="production")

    # Base de datos - Componentes separados
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_USER: str = Field(default="subgraph")
    DATABASE_PASSWORD: str = Field(default="subgraph")
    DATABASE_NAME: str = Field(default="subgraph_mirror")

    # Base de datos - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")

    # Namespaces
    TARGET_SCHEMA: str = Field(default="public_mirror")
    CONTROL_SCHEMA: str = Field(default="public")
    ACTIVATION_LOCK_KEY: int = Field(default=740_311)

    # Declaracion de entidades y subgraph
    ENTITIES_FILE: str = Field(default="config/entities.yml")
    SUBGRAPH_API_KEY: str = Field(default="")
    SUBGRAPH_TIMEOUT_S: float = Field(default=30.0)

    # Escritura
    DB_BATCH_SIZE: int = Field(default=1000, gt=0)
    DB_MAX_RETRIES: int = Field(default=3, ge=0)
    DB_INITIAL_RETRY_DELAY_S: float = Field(default=1.0, ge=0)
    SYNC_MAX_WORKERS: int = Field(default=4, gt=0)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/sync.log")

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva (formato psycopg).
        Si DATABASE_URL esta definida, la usa; si no, la construye desde los componentes.
        """
        if self.DATABASE_URL:
            return normalize_psycopg_dsn(self.DATABASE_URL)
        return (
            f"postgresql://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )

    @computed_field
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


# Instancia global de configuracion
settings = Settings()
