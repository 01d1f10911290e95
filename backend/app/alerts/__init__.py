"""
alerts — Hazard notification pipeline.

Sub-modules:
    channels/        — Delivery backends (SMTP email, Twilio WhatsApp/SMS, WebSocket)
    dispatcher       — Fan-out of one hazard to realtime, authority and nearby users
    ingestion        — Report persistence and background scheduling
    recipient_index  — Radius lookup of registered recipients
    dedup_ledger     — Once-per-area suppression of authority emails
    geocoding        — Reverse geocoding for message text
    formatter        — Message templates
    models / tables  — Data structures and ORM rows
"""
