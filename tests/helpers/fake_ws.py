import json
from collections import deque

from websockets.exceptions import ConnectionClosedOK


class FakeWS:
    """
    Minimal websocket stub compatible with the `websockets` connect() context manager.
    Script behavior by passing messages in `scripted`: dicts/lists are JSON-encoded,
    strings are delivered as-is. Once the script is drained, recv() behaves like a
    socket the server closed.
    """
    def __init__(self, scripted=None):
        self.inbound = deque()
        self.outbound = []
        self.closed = False
        self.entered = False
        for m in scripted or []:
            self.inbound.append(m if isinstance(m, str) else json.dumps(m))

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    async def send(self, data: str):
        self.outbound.append(json.loads(data))

    async def close(self):
        self.closed = True

    async def recv(self) -> str:
        if self.closed or not self.inbound:
            raise ConnectionClosedOK(None, None)
        return self.inbound.popleft()


class FakeConnector:
    """
    Stand-in for `ws_connect`. Each call consumes the next scripted outcome:
    a FakeWS is returned, an exception instance is raised (failed handshake).
    When outcomes run out, every further call raises OSError.
    """
    def __init__(self, outcomes=None):
        self.outcomes = deque(outcomes or [])
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if not self.outcomes:
            raise OSError("connection refused")
        nxt = self.outcomes.popleft()
        if isinstance(nxt, BaseException):
            raise nxt
        return nxt
