"""
PostgreSQL persistence layer for the Users Service.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import List, Optional

import asyncpg

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.errors import NotFoundError, StoreError, StoreUnavailableError
from ..users.models import User, UserCreateRequest


# Failures that mean "could not talk to the database" rather than "the
# database rejected the statement".
CONNECTIVITY_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.CannotConnectNowError,
    asyncpg.TooManyConnectionsError,
    asyncpg.QueryCanceledError,
    asyncio.TimeoutError,
    OSError,
)


# users.id is SERIAL (int4); asyncpg refuses to encode ids outside this range.
ID_MIN = -2 ** 31
ID_MAX = 2 ** 31 - 1


def _id_in_range(user_id: int) -> bool:
    return ID_MIN <= user_id <= ID_MAX


def _affected_rows(status: str) -> int:
    """Parse the row count from a command tag such as ``UPDATE 1``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class PostgreSQLUserStore:
    """PostgreSQL persistence layer for users."""

    def __init__(
        self,
        dsn: str,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 30.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.metrics = metrics
        self.logger = get_logger("users.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )

            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise StoreUnavailableError(str(e)) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create the users table if it does not exist."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id SERIAL PRIMARY KEY,
                    name VARCHAR(255) NOT NULL,
                    email VARCHAR(255) NOT NULL,
                    age INTEGER NOT NULL
                );
            """)

    @asynccontextmanager
    async def _connection(self, operation: str):
        """Acquire a pooled connection and translate driver failures."""
        if self.pool is None:
            self._record(operation, "error")
            raise StoreUnavailableError("PostgreSQL pool not started", {"operation": operation})

        start_time = time.time()
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except CONNECTIVITY_ERRORS as e:
            self.logger.error("PostgreSQL unavailable", operation=operation, error=str(e))
            self._record(operation, "error")
            raise StoreUnavailableError(str(e), {"operation": operation}) from e
        except asyncpg.PostgresError as e:
            self.logger.error("PostgreSQL statement failed", operation=operation, error=str(e))
            self._record(operation, "error")
            raise StoreError(str(e), {"operation": operation, "sqlstate": getattr(e, "sqlstate", None)}) from e
        else:
            self._record(operation, "ok")
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "store_operation_duration_seconds", time.time() - start_time, operation=operation
                )

    def _record(self, operation: str, status: str):
        if self.metrics:
            self.metrics.increment_counter("store_operations_total", operation=operation, status=status)

    async def insert(self, draft: UserCreateRequest) -> int:
        """Insert a user and return the generated id."""
        async with self._connection("insert") as conn:
            user_id = await conn.fetchval("""
                INSERT INTO users (name, email, age) VALUES ($1, $2, $3) RETURNING id
            """, draft.name, draft.email, draft.age)

        self.logger.debug("User inserted", user_id=user_id)
        return user_id

    async def find_by_id(self, user_id: int) -> User:
        """Load a user. Raises NotFoundError when no row matches."""
        if not _id_in_range(user_id):
            raise NotFoundError(details={"user_id": user_id})

        async with self._connection("find_by_id") as conn:
            row = await conn.fetchrow("""
                SELECT id, name, email, age FROM users WHERE id = $1
            """, user_id)

        if not row:
            raise NotFoundError(details={"user_id": user_id})

        return self._row_to_user(row)

    async def find_all(self) -> List[User]:
        """Load all users ordered by id. Empty table yields an empty list."""
        async with self._connection("find_all") as conn:
            rows = await conn.fetch("""
                SELECT id, name, email, age FROM users ORDER BY id
            """)

        return [self._row_to_user(row) for row in rows]

    async def update(self, user: User) -> int:
        """Replace name, email and age by id. Returns the affected row count."""
        if not _id_in_range(user.id):
            return 0

        async with self._connection("update") as conn:
            result = await conn.execute("""
                UPDATE users SET name = $1, email = $2, age = $3 WHERE id = $4
            """, user.name, user.email, user.age, user.id)

        return _affected_rows(result)

    async def delete(self, user_id: int) -> int:
        """Delete a user by id. Returns the affected row count."""
        if not _id_in_range(user_id):
            return 0

        async with self._connection("delete") as conn:
            result = await conn.execute("""
                DELETE FROM users WHERE id = $1
            """, user_id)

        return _affected_rows(result)

    def _row_to_user(self, row) -> User:
        """Convert database row to User object."""
        return User(
            id=row['id'],
            name=row['name'],
            email=row['email'],
            age=row['age']
        )

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False
