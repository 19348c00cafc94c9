"""
PostgreSQL Service Factory - Unified access to all PostgreSQL-backed services.

Provides a single entry point for initializing and accessing the database
services with shared connection pooling.
"""
from typing import Any, Dict, Optional
import os

from fluxion.utils.connection_pool import ConnectionPool
from fluxion.utils.conversation_service import ConversationService
from fluxion.utils.env import read_secret
from fluxion.utils.logging import get_logger
from fluxion.utils.project_service import ProjectService
from fluxion.utils.sql import SQL_CREATE_SCHEMA

logger = get_logger(__name__)


class PostgresServiceFactory:
    """
    Factory for creating PostgreSQL-backed services with shared connection pooling.

    Usage:
        factory = PostgresServiceFactory.from_config({
            'host': 'localhost',
            'port': 5432,
            'database': 'postgres',
            'user': 'postgres',
            'password': 'secret',
        })

        projects = factory.project_service
        conversations = factory.conversation_service

        # Or create from existing pool
        factory = PostgresServiceFactory(connection_pool=existing_pool)
    """

    def __init__(
        self,
        connection_pool: Optional[ConnectionPool] = None,
        connection_params: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize the service factory.

        Args:
            connection_pool: Existing ConnectionPool instance
            connection_params: Database connection parameters (if no pool provided)
        """
        self._pool = connection_pool
        self._conn_params = connection_params

        # Lazy-initialized services
        self._project_service: Optional[ProjectService] = None
        self._conversation_service: Optional[ConversationService] = None

    @classmethod
    def from_config(
        cls,
        connection_params: Dict[str, Any],
        pool_min_conn: int = 1,
        pool_max_conn: int = 10,
    ) -> 'PostgresServiceFactory':
        """
        Create factory from connection parameters.

        Args:
            connection_params: Dict with host, port, database, user, password
            pool_min_conn: Minimum pool connections
            pool_max_conn: Maximum pool connections

        Returns:
            Configured PostgresServiceFactory
        """
        pool = ConnectionPool(
            connection_params=connection_params,
            min_connections=pool_min_conn,
            max_connections=pool_max_conn,
        )

        return cls(
            connection_pool=pool,
            connection_params=connection_params,
        )

    @classmethod
    def from_yaml_config(cls, config: Dict[str, Any]) -> 'PostgresServiceFactory':
        """
        Create factory from the services.postgres section of the YAML config.
        The password always comes from the PG_PASSWORD secret.
        """
        db_config = config.get('services', {}).get('postgres', {})

        connection_params = {
            'host': db_config.get('host', 'localhost'),
            'port': db_config.get('port', 5432),
            'database': db_config.get('database', 'postgres'),
            'user': db_config.get('user', 'postgres'),
            'password': read_secret('PG_PASSWORD'),
        }

        pool_config = db_config.get('pool', {})

        return cls.from_config(
            connection_params=connection_params,
            pool_min_conn=pool_config.get('min_connections', 1),
            pool_max_conn=pool_config.get('max_connections', 10),
        )

    @classmethod
    def from_env(
        cls,
        *,
        password_override: Optional[str] = None,
        pool_min_conn: int = 1,
        pool_max_conn: int = 10,
    ) -> 'PostgresServiceFactory':
        """
        Create factory from environment variables (PGHOST, PGPORT, PGDATABASE, PGUSER, PG_PASSWORD).
        """
        host = os.environ.get('PGHOST', os.environ.get('POSTGRES_HOST', 'localhost'))
        port = int(os.environ.get('PGPORT', os.environ.get('POSTGRES_PORT', 5432)))
        database = os.environ.get('PGDATABASE', os.environ.get('POSTGRES_DB', 'postgres'))
        user = os.environ.get('PGUSER', os.environ.get('POSTGRES_USER', 'postgres'))
        password = password_override or read_secret('PG_PASSWORD') or os.environ.get('POSTGRES_PASSWORD', '')

        connection_params = {
            'host': host,
            'port': port,
            'database': database,
            'user': user,
            'password': password,
        }
        return cls.from_config(
            connection_params=connection_params,
            pool_min_conn=pool_min_conn,
            pool_max_conn=pool_max_conn,
        )

    @property
    def connection_pool(self) -> ConnectionPool:
        """Get the connection pool."""
        if self._pool is None:
            if self._conn_params:
                self._pool = ConnectionPool(connection_params=self._conn_params)
            else:
                raise ValueError("No connection pool or params available")
        return self._pool

    @property
    def project_service(self) -> ProjectService:
        """Get ProjectService (lazy-initialized)."""
        if self._project_service is None:
            self._project_service = ProjectService(connection_pool=self.connection_pool)
        return self._project_service

    @property
    def conversation_service(self) -> ConversationService:
        """Get ConversationService (lazy-initialized)."""
        if self._conversation_service is None:
            self._conversation_service = ConversationService(connection_pool=self.connection_pool)
        return self._conversation_service

    def initialize_schema(self) -> None:
        """Create tables, the documents table and the match_documents function."""
        pool = self.connection_pool
        conn = pool.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.execute(SQL_CREATE_SCHEMA)
            conn.commit()
            logger.info("Database schema initialized")
        except Exception:
            conn.rollback()
            raise
        finally:
            pool.release_connection(conn)

    def close(self) -> None:
        """Close connection pool and cleanup resources."""
        if self._pool:
            self._pool.close()
            self._pool = None

        # Clear service references
        self._project_service = None
        self._conversation_service = None

    def __enter__(self) -> 'PostgresServiceFactory':
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - close pool."""
        self.close()
