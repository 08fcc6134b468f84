"""
Database connectivity and schema lifecycle for TSmart Quality.

- `connection`: pooled PostgreSQL gateway (query/transaction/health, query metrics)
- `migrations`: registered migration catalog and the transactional runner
- `bootstrap`: idempotent baseline and sample data
- `lifecycle`: `open_database()` wires everything into one owned handle
"""
