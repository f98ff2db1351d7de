"""
Monitoring Package.

============================================================
PURPOSE
============================================================
Outbound notification channels.

- notifications.telegram: HTML broadcast to registered chats

============================================================
"""
