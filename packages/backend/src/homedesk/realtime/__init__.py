"""Real-time infrastructure — subscriber registry + WebSocket gateway.

Learn: Events flow in one direction:
1. Services record events → routes publish them after commit
2. EventBus.broadcast → every open socket of that business
   (and, for chat messages, every connected visitor)
3. Optional Redis relay → the same fan-out on other API processes

Delivery is best-effort. The dashboard can always refetch over REST
to catch up on anything it missed while disconnected.
"""
