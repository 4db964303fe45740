"""db/queries/ -- Query functions dispatched by db.gateway.Gateway.

Signature convention: fn(scope, conn, *args). scope is the capability marker
checked by the decorator, conn is a SQLAlchemy Connection inside an open
transaction owned by the gateway. Query functions never commit, never open
their own connections and never read the clock: "now" is always an argument.
"""
