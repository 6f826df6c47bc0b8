"""PostgreSQL connection pooling for the outbreak store.

Aggregation and radar queries fan out several reads at once, so
connections come from a psycopg2 ThreadedConnectionPool and are handed
out per read. Borrowers wait for a free connection rather than failing
when every connection is in use. Every session is tagged with an
application_name and can carry a server-side statement timeout.
"""
import json
import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from psycopg2 import pool

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "cropwatch"
DEFAULT_APPLICATION_NAME = "cropwatch-outbreak"


@dataclass(frozen=True)
class DatabaseConfig:
    """Where the outbreak_reports table lives and how to reach it.

    Development reads DB_* variables; deployed services read the
    credentials secret from AWS Secrets Manager.
    """
    host: str
    port: int = 5432
    database: str = DEFAULT_DATABASE
    username: str = ""
    password: str = ""
    min_connections: int = 2
    max_connections: int = 10
    connect_timeout: int = 10
    ssl_mode: str = "require"
    application_name: str = DEFAULT_APPLICATION_NAME
    statement_timeout_ms: int = 0     # 0 leaves the server default
    pool_wait_seconds: float = 30.0

    def __post_init__(self):
        if self.min_connections < 1 or self.max_connections < self.min_connections:
            raise ValueError(
                f"Pool bounds must satisfy 1 <= min <= max, got "
                f"min={self.min_connections} max={self.max_connections}"
            )

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create config from environment variables.

        Environment variables:
            DB_HOST: Database host (default localhost)
            DB_PORT: Database port (default 5432)
            DB_NAME: Database name (default cropwatch)
            DB_USER / DB_PASSWORD: Credentials
            DB_MIN_CONN / DB_MAX_CONN: Pool bounds (default 2 / 10)
            DB_SSL_MODE: SSL mode (default require)
            DB_STATEMENT_TIMEOUT_MS: Per-statement timeout, 0 for none
            DB_POOL_WAIT_SECONDS: Wait for a free connection (default 30)
        """
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", DEFAULT_DATABASE),
            username=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            min_connections=int(os.getenv("DB_MIN_CONN", "2")),
            max_connections=int(os.getenv("DB_MAX_CONN", "10")),
            ssl_mode=os.getenv("DB_SSL_MODE", "require"),
            statement_timeout_ms=int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "0")),
            pool_wait_seconds=float(os.getenv("DB_POOL_WAIT_SECONDS", "30")),
        )

    @classmethod
    def from_secret(cls, secret: Mapping[str, Any]) -> "DatabaseConfig":
        """Build config from an RDS-style credentials secret.

        Keys missing from the secret fall back to the DB_* variables.
        """
        env = cls.from_env()
        return cls(
            host=secret.get("host", env.host),
            port=int(secret.get("port", env.port)),
            database=secret.get("dbname", env.database),
            username=secret.get("username", env.username),
            password=secret.get("password", env.password),
            min_connections=env.min_connections,
            max_connections=env.max_connections,
            ssl_mode=env.ssl_mode,
            statement_timeout_ms=env.statement_timeout_ms,
            pool_wait_seconds=env.pool_wait_seconds,
        )

    @classmethod
    def from_secrets_manager(cls, secret_arn: str, region: str = "us-east-1") -> "DatabaseConfig":
        """Load credentials from AWS Secrets Manager.

        Args:
            secret_arn: ARN of the secret containing credentials
            region: AWS region

        Raises:
            Whatever boto3 raises; the failure is logged first.
        """
        import boto3

        try:
            client = boto3.client("secretsmanager", region_name=region)
            response = client.get_secret_value(SecretId=secret_arn)
            secret = json.loads(response["SecretString"])
        except Exception as e:
            logger.error(
                "SECRETS_MANAGER_LOAD_FAILED",
                extra={"error": str(e), "secret_arn": secret_arn}
            )
            raise

        return cls.from_secret(secret)

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for psycopg2.connect / the pool."""
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.username,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
            "sslmode": self.ssl_mode,
            "application_name": self.application_name,
        }
        if self.statement_timeout_ms > 0:
            kwargs["options"] = f"-c statement_timeout={self.statement_timeout_ms}"
        return kwargs


class ConnectionManager:
    """Owns the pool and lends out one connection per read."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: Optional[pool.ThreadedConnectionPool] = None
        # getconn() raises at once when the pool is empty; borrowers queue here
        self._slots = threading.BoundedSemaphore(config.max_connections)
        self._init_lock = threading.Lock()
        self._initialized = False

        logger.info(
            "CONNECTION_MANAGER_CREATED",
            extra={
                "host": config.host,
                "database": config.database,
                "max_connections": config.max_connections,
            }
        )

    def initialize(self) -> None:
        """Open the pool. Safe to call more than once, from any thread."""
        with self._init_lock:
            if self._initialized:
                return

            try:
                self._pool = pool.ThreadedConnectionPool(
                    self.config.min_connections,
                    self.config.max_connections,
                    **self.config.connect_kwargs(),
                )
            except Exception as e:
                logger.error(
                    "CONNECTION_POOL_INIT_FAILED",
                    extra={"host": self.config.host, "error": str(e)}
                )
                raise

            self._initialized = True
        logger.info(
            "CONNECTION_POOL_INITIALIZED",
            extra={
                "host": self.config.host,
                "database": self.config.database,
                "application_name": self.config.application_name,
            }
        )

    @contextmanager
    def get_connection(self):
        """Borrow a pooled connection, returning it when the block exits.

        Blocks up to pool_wait_seconds when every connection is lent out.

        Usage:
            with manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        """
        if not self._initialized:
            self.initialize()

        if not self._slots.acquire(timeout=self.config.pool_wait_seconds):
            logger.error(
                "CONNECTION_POOL_WAIT_TIMEOUT",
                extra={
                    "host": self.config.host,
                    "wait_seconds": self.config.pool_wait_seconds,
                }
            )
            raise pool.PoolError(
                f"No connection free after {self.config.pool_wait_seconds}s"
            )

        try:
            conn = self._pool.getconn()
        except Exception:
            self._slots.release()
            raise
        try:
            yield conn
        finally:
            self._pool.putconn(conn)
            self._slots.release()

    def health_check(self) -> Dict[str, Any]:
        """Readiness result for /ready."""
        if not self._initialized:
            return {"status": "not_initialized", "healthy": False}

        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
        except Exception as e:
            logger.error(
                "DATABASE_HEALTH_CHECK_FAILED",
                extra={"host": self.config.host, "error": str(e)}
            )
            return {"status": "error", "healthy": False, "error": str(e)}

        return {
            "status": "connected",
            "healthy": True,
            "host": self.config.host,
            "database": self.config.database,
        }

    def close(self) -> None:
        """Close every pooled connection. Called on shutdown."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("CONNECTION_POOL_CLOSED")

        self._initialized = False


_manager: Optional[ConnectionManager] = None


def get_connection_manager(config: Optional[DatabaseConfig] = None) -> ConnectionManager:
    """Get or create the process-wide connection manager.

    Args:
        config: Configuration used on first call (defaults to from_env())
    """
    global _manager
    if _manager is None:
        _manager = ConnectionManager(config or DatabaseConfig.from_env())
    return _manager
