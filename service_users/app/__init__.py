"""
Users Service package.

Exposes a User resource over HTTP backed by PostgreSQL, with a Redis
read-through / write-invalidate cache in front of it:

- app.main: API surface (CRUD routes, health, metrics).
- app.users: User models and the cache-aside coordinator.
- app.cache: Redis side-cache adapter.
- app.persistence: PostgreSQL store adapter.

Guidelines:
- The service is stateless; rely on the external cache and database.
- The database is the authority; cache entries are derived and expire.
- Cache trouble degrades to a miss, never to a failed request.
"""
