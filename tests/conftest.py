import os

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

import pytest

from universe_model import parse_snapshot


def make_cell(cell_id, x, y, cell_type="Herbivoro", **extra):
    raw = {
        "id": cell_id,
        "x": x,
        "y": y,
        "type": cell_type,
        "energy": 50,
        "age": 3,
        "inventory_count": 0,
        "discoveries_count": 0,
    }
    raw.update(extra)
    return raw


def make_planet(planet_id, cells=(), size=(50, 50), **extra):
    raw = {
        "id": planet_id,
        "name": planet_id.title(),
        "type": "terran",
        "size": list(size),
        "cells": list(cells),
        "cell_counts": {"plants": 4, "herbivores": 3, "carnivores": 1},
        "conditions": {"temperature": 21.5, "pressure": 1.0, "radiation": 0.1},
        "discovery_multiplier": 1.5,
        "trade_routes": 2,
        "total_inventory": 7,
        "total_discoveries": 1,
        "scattered_materials": 12,
    }
    raw.update(extra)
    return raw


def make_update(planets, step=1):
    return {
        "type": "universe_update",
        "step": step,
        "timestamp": "2024-05-01T12:00:00Z",
        "planets": list(planets),
        "cosmic_events": [
            {
                "name": "Solar Flare",
                "description": "Radiation spike",
                "duration": 12,
                "affected_planets": ["alpha"],
            }
        ],
        "discovery_stats": {
            "total_discoveries": 1,
            "recent_discoveries": [
                {"name": "Fire", "significance": 20.0, "type": "tool", "discoverer": "Cell_4"}
            ],
        },
    }


class FakeScheduler:
    """Manual clock standing in for loop.call_later."""

    class Handle:
        def __init__(self, when, callback):
            self.when = when
            self.callback = callback
            self.cancelled = False

        def cancel(self):
            self.cancelled = True

    def __init__(self):
        self.now = 0.0
        self.handles = []

    def call_later(self, delay, callback):
        handle = self.Handle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds):
        """Move time forward, firing due callbacks in time order."""
        target = self.now + seconds
        while True:
            due = [h for h in self.pending() if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.handles.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target


class FakeChannel:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self, messages=()):
        self.sent = []
        self.closed_with = None
        self.close_code = None
        self.close_reason = None
        self._messages = list(messages)

    async def send(self, text):
        self.sent.append(text)

    async def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)
        self.close_code = code
        self.close_reason = reason

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self._messages:
            yield message


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def four_planet_snapshot():
    planets = [
        make_planet("alpha", cells=[make_cell(1, 0, 0), make_cell(2, 25, 25), make_cell(3, 50, 10)]),
        make_planet("beta", cells=[make_cell(10, 5, 5)]),
        make_planet("gamma", size=(200, 100), cells=[make_cell(20, 100, 50, "Planta")]),
        make_planet("delta"),
    ]
    return parse_snapshot(make_update(planets))
