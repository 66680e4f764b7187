from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Chat metrics
chat_messages_total = Counter(
    "chat_messages_total",
    "Total chat messages stored or echoed",
    ["sender"],
)

chat_reply_duration = Histogram(
    "chat_reply_duration_seconds",
    "Time to produce an assistant reply, including the simulated thinking delay",
    buckets=(0.01, 0.1, 0.5, 1, 2, 5, 10),
)

attachments_uploaded_total = Counter(
    "chat_attachments_uploaded_total",
    "Total attachments received",
    ["type"],
)

# Conversation metrics
conversations_created_total = Counter(
    "chat_conversations_created_total",
    "Total conversations created",
    ["origin"],
)

conversations_deleted_total = Counter(
    "chat_conversations_deleted_total",
    "Total conversations deleted",
)

# WebSocket metrics
websocket_connections = Gauge(
    "websocket_connections_active",
    "Active WebSocket connections",
)
