"""Authentication module.

Turns the session cookie set at login into a user id, for both REST
requests and WebSocket handshakes. Token issuance lives in the account
system, not here.

Services:
    - TokenVerifier: Verifies signed session tokens (PyJWT).
"""
