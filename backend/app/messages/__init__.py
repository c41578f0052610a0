"""Direct messages.

Storage, pagination, and the REST endpoints for one-to-one conversations.

Services:
    - MessageService: DuckDB-backed message store and conversation pager.
"""
