"""Realtime layer: presence, typing indicators, and push notifications.

Clients hold a WebSocket session at ``/ws``. The server tracks sessions per
user, announces online/offline transitions, relays typing signals, and pushes
``new_message`` / ``messages_read`` notifications for writes that went
through the REST API. Delivery is best effort: the message store stays the
source of truth.
"""
