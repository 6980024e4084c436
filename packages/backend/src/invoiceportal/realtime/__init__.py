"""Real-time infrastructure — in-process broadcast over WebSocket.

Learn: Events flow through one channel:
1. Services → BroadcastBus.publish() after a successful database commit
2. BroadcastBus → every admin WebSocket in the ConnectionRegistry

The HeartbeatMonitor prunes connections that stop answering probes.
On the client side, LiveUpdateClient owns the socket lifecycle and
apply_event() folds incoming events into the local invoice list.

Delivery is best-effort: a dashboard that was offline simply re-fetches
the list over HTTP when it comes back.
"""
