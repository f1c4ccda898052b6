"""Auth module — bearer-token verification and role checks."""
