"""
Test doubles: a scripted backend behind httpx.MockTransport, a manually
advanced clock for countdowns and an offline geocoder.
"""
import asyncio
import json
from datetime import date

import httpx

from healthsync.services.geocoding_service import unknown_address

TODAY = date(2026, 1, 15)

PATIENT = {
    "id": "u1",
    "name": "Asha Rao",
    "email": "a@b.com",
    "role": "user",
}


class FakeBackend:
    """Answers scripted responses per (method, path) and records every call."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method, path, status=200, body=None, handler=None):
        self.routes[(method, path)] = handler or (status, body if body is not None else {"success": True})
        return self

    def handle(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url.path, payload))
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"success": False, "message": "Not found"})
        if callable(route):
            return route(request, payload)
        status, body = route
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def paths(self):
        return [path for _, path, _ in self.calls]

    def payloads(self, path):
        return [payload for _, call_path, payload in self.calls if call_path == path]


class ManualClock:
    """Injectable sleep; seconds only pass when the test calls advance()."""

    def __init__(self):
        self._waiters = []

    async def sleep(self, seconds):
        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        await future

    async def advance(self, seconds: int):
        for _ in range(seconds):
            await asyncio.sleep(0)
            waiters, self._waiters = self._waiters, []
            for future in waiters:
                if not future.done():
                    future.set_result(None)
            await asyncio.sleep(0)


class FakeGeocoder:
    def __init__(self, address=None):
        self.address = address
        self.calls = []

    async def reverse(self, latitude, longitude):
        self.calls.append((latitude, longitude))
        return self.address or unknown_address()
