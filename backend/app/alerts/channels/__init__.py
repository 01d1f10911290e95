"""
channels — Delivery backends.

Point-to-point channels subclass ChannelSender:
    send(contact, message) → bool        (never raises)

The realtime broadcaster pushes to every connected WebSocket instead.
"""
