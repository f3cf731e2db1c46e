"""HomeDesk — operator backend for home-service businesses.

The realtime and automation core behind the operator dashboard:
messaging, jobs, reviews, automation rules, and live WebSocket
fan-out to operators and chat-widget visitors.
"""

__version__ = "0.1.0"
