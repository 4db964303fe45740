"""auth/ -- Identity primitives for the portal.

Domain dataclasses, the permission catalog, password hashing, token and code
generation, and the token/code state machines. Pure functions over data:
nothing here touches the store.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, db/ or services/.
db/, services/ and api/ import from auth/, not the other way around.
"""
