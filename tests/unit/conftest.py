import pytest
from unittest.mock import MagicMock

from fluxion.utils.connection_pool import ConnectionPool


@pytest.fixture
def mock_connection():
    """Create a mock psycopg2 connection."""
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value.__enter__ = MagicMock(return_value=cursor)
    conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    return conn, cursor


@pytest.fixture
def mock_pool(mock_connection):
    """Create a mock connection pool."""
    conn, cursor = mock_connection
    pool = MagicMock(spec=ConnectionPool)
    pool.get_connection.return_value = conn
    pool.release_connection = MagicMock()
    return pool


@pytest.fixture
def base_config():
    """A full config dict as returned by get_full_config()."""
    return {
        "name": "fluxion-test",
        "global": {"verbosity": 3},
        "services": {
            "postgres": {
                "host": "db",
                "port": 5432,
                "database": "fluxion",
                "user": "fluxion",
                "pool": {"min_connections": 1, "max_connections": 4},
            },
            "chat_app": {
                "host": "0.0.0.0",
                "port": 7861,
                "default_provider": "gemini",
                "default_model": "gemini-2.0-flash",
                "recursion_limit": 25,
                "max_upload_mb": 20,
                "providers": {"gemini": {"temperature": 0, "max_output_tokens": 2048}},
                "auth": {
                    "enabled": False,
                    "audience": "authenticated",
                    "anonymous_user_id": "00000000-0000-0000-0000-000000000000",
                },
            },
            "web_search": {"location": "United States", "hl": "en", "gl": "us", "max_results": 5, "timeout": 15},
        },
        "data_manager": {
            "embedding_name": "HuggingFaceEndpointEmbeddings",
            "embedding_class_map": {
                "HuggingFaceEndpointEmbeddings": {
                    "class": "HuggingFaceEndpointEmbeddings",
                    "kwargs": {"model": "sentence-transformers/all-MiniLM-L6-v2"},
                },
            },
            "table_name": "documents",
            "query_name": "match_documents",
            "chunk_size": 256,
            "chunk_overlap": 20,
            "num_documents_to_retrieve": 5,
        },
    }
