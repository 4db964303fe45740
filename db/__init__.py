"""db/ -- Capability-gated data access layer.

Everything that reads or writes identity, token, permission or invitation data,
and the per-user app data, lives here, behind db.gateway.Gateway:

  db/schema.py      -- SQLAlchemy Core tables + row mappers
  db/engine.py      -- engine/pool construction, schema create/drop
  db/scope.py       -- capability markers and the query decorators
  db/errors.py      -- QueryResult, error taxonomy, failure mapping
  db/gateway.py     -- the only dispatcher of query functions
  db/queries/       -- authenticated query functions (identity and apps)
  db/tokenless.py   -- allow-list of pre-authentication query functions

Layer rule: db/ may import from core/, auth/ and apps/. It does NOT import from
api/ or services/.
"""
