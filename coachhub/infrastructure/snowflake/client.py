"""
Snowflake database connection management.

Provides the connection config, a connection context manager and the
factory the API dependencies use. Mock mode doesn't come through here:
it swaps the repositories themselves for the in-memory store.

Most code never touches this module directly - it goes through the
repositories, which translate between domain models and database rows.
"""

import base64
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Optional, Protocol

logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a mock without
    importing the actual snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "COACHHUB"
    schema: str = "SCHEDULING"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


def _load_private_key(pem_bytes: bytes) -> bytes:
    """
    Convert a PEM private key to the DER/PKCS8 bytes snowflake-connector expects.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    private_key = serialization.load_pem_private_key(
        pem_bytes,
        password=None,  # No password on the key
        backend=default_backend()
    )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def _read_private_key(config: SnowflakeConfig) -> Optional[bytes]:
    """Key bytes from the configured file or base64 value, file first."""
    if config.private_key_path:
        with open(config.private_key_path, 'rb') as key_file:
            return _load_private_key(key_file.read())
    if config.private_key_base64:
        return _load_private_key(base64.b64decode(config.private_key_base64))
    return None


def build_connect_params(config: SnowflakeConfig) -> dict:
    """
    Connection parameters for snowflake.connector.connect.

    Key-pair auth wins over password auth when both are configured.
    """
    connect_params = {
        'account': config.account,
        'user': config.user,
        'database': config.database,
        'schema': config.schema,
        'warehouse': config.warehouse,
        'role': config.role,
        'client_session_keep_alive': True,
    }

    private_key = _read_private_key(config)
    if private_key is not None:
        logger.info("Using key-pair authentication for Snowflake")
        connect_params['private_key'] = private_key
    elif config.password:
        logger.info("Using password authentication for Snowflake")
        connect_params['password'] = config.password
    else:
        raise SnowflakeConnectionError(
            "Either password or a private key must be provided"
        )

    return connect_params


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    The connection is closed even if the caller raises. Driver errors are
    wrapped in SnowflakeConnectionError; errors raised by the caller's own
    work propagate unchanged.

    Usage:
        with get_snowflake_connection(config) as conn:
            cursor = conn.cursor()
            # do work
            conn.commit()
    """
    try:
        import snowflake.connector
    except ImportError:
        raise ImportError(
            "snowflake-connector-python is required. "
            "Install with: pip install snowflake-connector-python"
        )

    try:
        conn = snowflake.connector.connect(**build_connect_params(config))
    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}")

    logger.debug(
        "Established Snowflake connection",
        extra={
            "account": config.account,
            "database": config.database,
            "schema": config.schema,
        }
    )

    try:
        yield conn
    finally:
        try:
            conn.close()
            logger.debug("Closed Snowflake connection")
        except Exception as e:
            logger.warning(
                "Error closing Snowflake connection",
                extra={"error": str(e)}
            )


def check_connection(conn: SnowflakeConnection) -> None:
    """Run a trivial query; raises if the connection is unusable."""
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    finally:
        cursor.close()
