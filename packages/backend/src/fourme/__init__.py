"""fourme — multi-tenant task board backend.

Users own projects, projects hold boards, boards hold tasks. Every
read and write is scoped to the owner through the containment chain,
and every task mutation leaves an immutable history entry.
"""

__version__ = "0.1.0"
