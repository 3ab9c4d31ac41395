"""
universe_layout.py

Layout math shared by drawing and picking, plus the overview/detail zoom
state machine.

Coordinate systems
------------------
- Canvas: pixels, origin top-left of the map area (sidebar excluded).
- Planet-local: cell grid units inside a planet of size (width, height).

The viewer draws with planet_center / cell_to_screen and resolve() picks
with the very same functions, so a drawn pixel always hit-tests back to
the thing drawn there.
"""

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Tuple, Union

from universe_model import Cell, Planet, Snapshot

PLANET_SPACING = 250
OVERVIEW_TOP = 120
PLANET_RADIUS = 80
DETAIL_EXTENT = 100  # side of the square the cell grid is squeezed into
CELL_RADIUS_FACTOR = 0.8
CELL_DRAW_MIN = 1
CELL_PICK_MIN = 3

Point = Tuple[float, float]


# ---------- Overview layout ----------


def planets_per_row(count: int) -> int:
    if count <= 0:
        return 0
    return math.ceil(math.sqrt(count))


def planet_center(index: int, count: int, canvas_width: float) -> Point:
    """Center of planet `index` out of `count` in the overview grid."""
    per_row = planets_per_row(count)
    start_x = (canvas_width - (per_row - 1) * PLANET_SPACING) / 2
    row = index // per_row
    col = index % per_row
    return (start_x + col * PLANET_SPACING, OVERVIEW_TOP + row * PLANET_SPACING)


def planet_centers(planets, canvas_width: float) -> List[Point]:
    count = len(planets)
    return [planet_center(i, count, canvas_width) for i in range(count)]


# ---------- Detail layout ----------


def cell_scale(planet: Planet) -> float:
    """Planet-local units to pixels; the larger side spans DETAIL_EXTENT."""
    largest = max(planet.width, planet.height)
    if largest <= 0:
        largest = 1.0
    return DETAIL_EXTENT / largest


def cell_to_screen(center: Point, cell: Cell, scale: float) -> Point:
    half = DETAIL_EXTENT / 2
    return (center[0] - half + cell.x * scale, center[1] - half + cell.y * scale)


def cell_draw_radius(scale: float) -> float:
    return max(CELL_DRAW_MIN, scale * CELL_RADIUS_FACTOR)


def cell_pick_radius(scale: float) -> float:
    return max(CELL_PICK_MIN, scale * CELL_RADIUS_FACTOR)


def overview_population_dots(planet: Planet, center: Point) -> Tuple[List[Point], List[Point]]:
    """Decorative dots around an unselected planet: (herbivores, carnivores)."""
    cx, cy = center
    herbivores = []
    for i in range(min(planet.cell_counts.herbivores, 20)):
        angle = (i / 20) * math.pi * 2
        herbivores.append((cx + math.cos(angle) * 60, cy + math.sin(angle) * 60))
    carnivores = []
    for i in range(min(planet.cell_counts.carnivores, 10)):
        angle = (i / 10) * math.pi * 2 + math.pi / 10
        carnivores.append((cx + math.cos(angle) * 45, cy + math.sin(angle) * 45))
    return herbivores, carnivores


# ---------- View state ----------


class ZoomLevel(Enum):
    OVERVIEW = "overview"
    DETAIL = "detail"


@dataclass(frozen=True)
class ViewState:
    zoom: ZoomLevel = ZoomLevel.OVERVIEW
    planet_id: Optional[str] = None
    selected_cell_id: Optional[int] = None

    @classmethod
    def overview(cls, selected_cell_id: Optional[int] = None) -> "ViewState":
        return cls(ZoomLevel.OVERVIEW, None, selected_cell_id)

    @classmethod
    def detail(cls, planet_id: str, selected_cell_id: Optional[int] = None) -> "ViewState":
        return cls(ZoomLevel.DETAIL, planet_id, selected_cell_id)

    def is_detail_of(self, planet_id: str) -> bool:
        return self.zoom is ZoomLevel.DETAIL and self.planet_id == planet_id


@dataclass(frozen=True)
class PlanetHit:
    planet_id: str


@dataclass(frozen=True)
class CellHit:
    planet_id: str
    cell_id: int


HitResult = Optional[Union[PlanetHit, CellHit]]


# ---------- Hit testing ----------


def _within(pointer: Point, target: Point, radius: float) -> bool:
    return math.hypot(pointer[0] - target[0], pointer[1] - target[1]) <= radius


def resolve(pointer: Point, snapshot: Optional[Snapshot], view: ViewState,
            canvas_width: float) -> HitResult:
    """
    Map a canvas coordinate to the planet or cell under it.

    Planets are tested first, in snapshot order. Only when the planet hit is
    the one currently zoomed into are its cells tested; a cell match wins
    over the planet. Returns None when the pointer is over empty space.
    """
    if snapshot is None:
        return None
    planets = snapshot.planets
    for index, planet in enumerate(planets):
        center = planet_center(index, len(planets), canvas_width)
        if not _within(pointer, center, PLANET_RADIUS):
            continue
        if view.is_detail_of(planet.id):
            scale = cell_scale(planet)
            pick_radius = cell_pick_radius(scale)
            for cell in planet.cells:
                if _within(pointer, cell_to_screen(center, cell, scale), pick_radius):
                    return CellHit(planet.id, cell.id)
        return PlanetHit(planet.id)
    return None


# ---------- Zoom transitions ----------


def apply_hit(view: ViewState, hit: HitResult) -> Tuple[ViewState, Optional[int]]:
    """
    Advance the zoom state machine for one click.

    Returns the new view state and the cell id to inspect, if any. Empty
    space zooms back out but leaves an open inspector alone.
    """
    if hit is None:
        return ViewState.overview(view.selected_cell_id), None
    if isinstance(hit, CellHit):
        return replace(view, selected_cell_id=hit.cell_id), hit.cell_id
    if view.is_detail_of(hit.planet_id):
        return view, None
    return ViewState.detail(hit.planet_id, view.selected_cell_id), None


def reconcile(view: ViewState, snapshot: Optional[Snapshot]) -> ViewState:
    """Drop back to the overview when the zoomed planet left the universe."""
    if snapshot is None or view.zoom is not ZoomLevel.DETAIL:
        return view
    if snapshot.find_planet(view.planet_id) is None:
        return ViewState.overview(view.selected_cell_id)
    return view
