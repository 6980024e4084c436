"""Authentication — a single admin account behind a session cookie.

Learn: There are no user records. The admin password's bcrypt hash lives
in config (PORTAL_ADMIN_PASSWORD_HASH). A successful login sets
`is_admin` in the signed Starlette session cookie; protected routes
check that flag via the require_admin dependency.
"""
