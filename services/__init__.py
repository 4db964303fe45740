"""services/ -- Use cases composed from gateway calls.

Every public function takes the Gateway first and returns a db.errors.QueryResult.
Services never open connections and never build SQL; they decide which query
functions to dispatch, in which order, under which permission checks.

Layer rule: services/ may import from core/, auth/, apps/ and db/. It does NOT import
from api/.
"""
