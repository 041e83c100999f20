"""
Ledger Service package for the Ledger Access Layer.

The service fronts the remote expense/budget store with a process-wide
query cache:
- Reads: served from the in-process TTL cache while fresh
- Writes: invalidate every cached read of the written collection first
- Store failures: propagated unchanged, never cached

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.adapters: Remote store clients (PostgREST, in-memory).
- app.caching: Fingerprints, the query cache, and the cached client facade.
- app.domain: Expense and budget queries built on the facade.
"""
