"""apps/ -- Domain shapes for the per-user portal apps (gym, expenses, time management).

Every record here is owned by exactly one user. The owner id is never taken
from a request: services pass CURRENT_USER and the gateway substitutes the
verified token owner, and every owned-resource query restates it in its WHERE
clause.

Layer rule: no imports from api/, db/, or services/.
"""
