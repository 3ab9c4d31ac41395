"""
universe_model.py

Immutable mirror of one universe snapshot as pushed by the simulation server.

A snapshot is decoded from a ``universe_update`` document:

    {
      "type": "universe_update",
      "step": 1234,
      "timestamp": "2024-05-01T12:00:00Z",
      "planets": [ { "id": "...", "name": "...", "size": [w, h], "cells": [...] }, ... ],
      "cosmic_events": [ ... ],
      "discovery_stats": { "total_discoveries": 3, "recent_discoveries": [ ... ] }
    }

Every object here is frozen; a new snapshot replaces the old one wholesale.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class SnapshotError(ValueError):
    """Raised when a universe_update document cannot be decoded."""


# ---------- Cell types ----------


class CellType(Enum):
    PRODUCER = "Planta"
    HERBIVORE = "Herbivoro"
    CARNIVORE = "Carnivoro"
    UNKNOWN = "unknown"

    @classmethod
    def from_wire(cls, name: str) -> "CellType":
        for member in cls:
            if member.value == name:
                return member
        return cls.UNKNOWN


# ---------- Data model ----------


@dataclass(frozen=True)
class Cell:
    id: int
    x: float
    y: float
    type: CellType
    age: int
    inventory_count: int = 0
    discoveries_count: int = 0
    energy: Optional[float] = None

    @property
    def highlighted(self) -> bool:
        """Cells carrying items or discoveries get a golden ring."""
        return self.inventory_count > 0 or self.discoveries_count > 0

    @classmethod
    def from_dict(cls, raw: dict) -> "Cell":
        energy = raw.get("energy")
        return cls(
            id=int(raw["id"]),
            x=float(raw["x"]),
            y=float(raw["y"]),
            type=CellType.from_wire(raw.get("type", "")),
            age=int(raw.get("age", 0)),
            inventory_count=int(raw.get("inventory_count", 0)),
            discoveries_count=int(raw.get("discoveries_count", 0)),
            energy=float(energy) if energy is not None else None,
        )


@dataclass(frozen=True)
class CellCounts:
    plants: int = 0
    herbivores: int = 0
    carnivores: int = 0

    @property
    def total(self) -> int:
        return self.plants + self.herbivores + self.carnivores

    @classmethod
    def from_dict(cls, raw: dict) -> "CellCounts":
        return cls(
            plants=int(raw.get("plants", 0)),
            herbivores=int(raw.get("herbivores", 0)),
            carnivores=int(raw.get("carnivores", 0)),
        )


@dataclass(frozen=True)
class Conditions:
    temperature: float = 0.0
    pressure: float = 0.0
    radiation: float = 0.0
    magnetic_field: Optional[float] = None

    @classmethod
    def from_dict(cls, raw: dict) -> "Conditions":
        magnetic = raw.get("magnetic_field")
        return cls(
            temperature=float(raw.get("temperature", 0.0)),
            pressure=float(raw.get("pressure", 0.0)),
            radiation=float(raw.get("radiation", 0.0)),
            magnetic_field=float(magnetic) if magnetic is not None else None,
        )


@dataclass(frozen=True)
class Planet:
    id: str
    name: str
    type: str
    size: Tuple[float, float]
    cells: Tuple[Cell, ...] = ()
    cell_counts: CellCounts = CellCounts()
    conditions: Conditions = Conditions()
    discovery_multiplier: float = 1.0
    trade_routes: int = 0
    total_inventory: int = 0
    total_discoveries: int = 0
    scattered_materials: int = 0

    @property
    def width(self) -> float:
        return self.size[0]

    @property
    def height(self) -> float:
        return self.size[1]

    @property
    def population(self) -> int:
        return self.cell_counts.total

    def find_cell(self, cell_id: int) -> Optional[Cell]:
        for cell in self.cells:
            if cell.id == cell_id:
                return cell
        return None

    @classmethod
    def from_dict(cls, raw: dict) -> "Planet":
        size = raw["size"]
        if not isinstance(size, (list, tuple)) or len(size) != 2:
            raise SnapshotError(f"Planet {raw.get('id')!r} has malformed size {size!r}")
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name", raw["id"])),
            type=str(raw.get("type", "unknown")),
            size=(float(size[0]), float(size[1])),
            cells=tuple(Cell.from_dict(c) for c in raw.get("cells", [])),
            cell_counts=CellCounts.from_dict(raw.get("cell_counts", {})),
            conditions=Conditions.from_dict(raw.get("conditions", {})),
            discovery_multiplier=float(raw.get("discovery_multiplier", 1.0)),
            trade_routes=int(raw.get("trade_routes", 0)),
            total_inventory=int(raw.get("total_inventory", 0)),
            total_discoveries=int(raw.get("total_discoveries", 0)),
            scattered_materials=int(raw.get("scattered_materials", 0)),
        )


@dataclass(frozen=True)
class CosmicEvent:
    name: str
    description: str = ""
    duration: int = 0
    affected_planets: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: dict) -> "CosmicEvent":
        return cls(
            name=str(raw["name"]),
            description=str(raw.get("description", "")),
            duration=int(raw.get("duration", 0)),
            affected_planets=tuple(str(p) for p in raw.get("affected_planets", [])),
        )


@dataclass(frozen=True)
class Discovery:
    name: str
    significance: float
    type: str
    discoverer: str = ""

    @classmethod
    def from_dict(cls, raw: dict) -> "Discovery":
        return cls(
            name=str(raw["name"]),
            significance=float(raw.get("significance", 0.0)),
            type=str(raw.get("type", "")),
            discoverer=str(raw.get("discoverer", "")),
        )


@dataclass(frozen=True)
class DiscoveryStats:
    total_discoveries: int = 0
    recent_discoveries: Tuple[Discovery, ...] = ()

    @classmethod
    def from_dict(cls, raw: dict) -> "DiscoveryStats":
        return cls(
            total_discoveries=int(raw.get("total_discoveries", 0)),
            recent_discoveries=tuple(
                Discovery.from_dict(d) for d in raw.get("recent_discoveries", [])
            ),
        )


@dataclass(frozen=True)
class Snapshot:
    step: int
    timestamp: datetime
    planets: Tuple[Planet, ...]
    cosmic_events: Tuple[CosmicEvent, ...] = ()
    discovery_stats: DiscoveryStats = DiscoveryStats()

    def find_planet(self, planet_id: str) -> Optional[Planet]:
        for planet in self.planets:
            if planet.id == planet_id:
                return planet
        return None


# ---------- Decoding ----------


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; a trailing 'Z' means UTC."""
    if not isinstance(value, str):
        raise SnapshotError(f"Timestamp must be a string, got {value!r}")
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError as exc:
        raise SnapshotError(f"Invalid timestamp {value!r}") from exc


def parse_snapshot(data: dict) -> Snapshot:
    """
    Decode a universe_update document into a Snapshot.

    Raises SnapshotError when required keys are missing or hold values of the
    wrong shape; the caller drops such messages.
    """
    if not isinstance(data, dict):
        raise SnapshotError("Snapshot document must be a JSON object.")
    try:
        planets = data["planets"]
        if not isinstance(planets, list):
            raise SnapshotError("'planets' must be a list.")
        return Snapshot(
            step=int(data["step"]),
            timestamp=parse_timestamp(data["timestamp"]),
            planets=tuple(Planet.from_dict(p) for p in planets),
            cosmic_events=tuple(
                CosmicEvent.from_dict(e) for e in data.get("cosmic_events", [])
            ),
            discovery_stats=DiscoveryStats.from_dict(data.get("discovery_stats", {})),
        )
    except SnapshotError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise SnapshotError(f"Malformed universe_update: {exc!r}") from exc
