"""Authentication and authorization.

Two ways to obtain a session:
1. username/password → JWT access/refresh tokens
2. Google OAuth → same token pair, user found or created by google_id

Both resolve to a CurrentIdentity. Authorization is a separate step:
fourme.auth.ownership checks, per request, that the identity owns the
project at the top of a resource's containment chain.
"""
