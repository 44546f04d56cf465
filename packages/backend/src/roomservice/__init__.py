"""Room Service Realtime — order event distribution for room-service ordering.

Pushes order lifecycle changes (received → preparing → ready → delivered)
to staff dashboards and guest tracking pages over Server-Sent Events,
with an optional Redis Streams log for multi-instance delivery.
"""

__version__ = "0.1.0"
