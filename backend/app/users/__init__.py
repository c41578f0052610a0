"""User directory.

Users are owned by the account system that issues session tokens. This
package keeps the read model the chat service needs: display name, avatar
and email per user id, plus the contact list.

Services:
    - UserService: DuckDB-backed lookup of user records.
"""
