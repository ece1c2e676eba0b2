"""History action constants.

Centralised so the service layer, the API, and tests agree on the
exact strings stored in task_history.action.
"""

TASK_CREATED = "created"
TASK_UPDATED = "updated"
TASK_MOVED = "moved"

ALL_ACTIONS = frozenset({TASK_CREATED, TASK_UPDATED, TASK_MOVED})
