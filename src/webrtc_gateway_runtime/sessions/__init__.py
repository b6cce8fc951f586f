"""Session state machines.

One module per entity kind, each with an immutable state type and a pure
``transition(state, input) -> Step`` function:

- peer: the root session, spawns connection sessions
- data: one DataConnection
- media: one MediaConnection

``actions`` lists the side effects transitions may request and ``effects``
performs them against the gateway.
"""
