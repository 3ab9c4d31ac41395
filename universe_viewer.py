"""
universe_viewer.py

pygame front end for the live universe.

Layout
------
- Header: simulation step, time of the last update, connection status.
- Left sidebar: planets, discoveries and cosmic events from the snapshot.
- Canvas: the galaxy overview. Clicking a planet zooms into its cell grid,
  clicking a cell there opens the inspector, clicking empty space zooms out.
- Inspector panel (right) for the selected cell; Esc or "x" closes it.

Every frame draws whatever snapshot the store holds right now, and every
click is resolved against that same latest snapshot.

Dependencies
-----------
    pip install pygame
"""

import asyncio
import logging
import random
from typing import List, Optional, Tuple

import pygame

from cell_inspector import CellInspector
from snapshot_store import SnapshotStore
from universe_layout import (
    PLANET_RADIUS,
    ViewState,
    apply_hit,
    cell_draw_radius,
    cell_scale,
    cell_to_screen,
    overview_population_dots,
    planet_centers,
    reconcile,
    resolve,
)
from universe_model import CellType, Planet, Snapshot
from universe_transport import ConnectionState, TransportManager

logger = logging.getLogger(__name__)

SIDEBAR_WIDTH = 280
HEADER_HEIGHT = 56
INSPECTOR_WIDTH = 350
STAR_COUNT = 100
GOLD = (255, 215, 0)


# ---------- Colour helpers ----------


def hex_to_rgb(hex_str: str) -> Tuple[int, int, int]:
    """Convert '#rrggbb' or 'rrggbb' to an (r, g, b) tuple."""
    if not hex_str:
        return (255, 255, 255)
    s = hex_str.strip()
    if s.startswith("#"):
        s = s[1:]
    if len(s) == 3:
        s = "".join(ch * 2 for ch in s)
    if len(s) != 6:
        return (255, 255, 255)
    try:
        r = int(s[0:2], 16)
        g = int(s[2:4], 16)
        b = int(s[4:6], 16)
        return (r, g, b)
    except ValueError:
        return (255, 255, 255)


PLANET_COLORS = {
    "terran": "#4CAF50",
    "volcanic": "#FF5722",
    "ice": "#2196F3",
    "crystal": "#9C27B0",
    "quantum": "#FF9800",
    "ocean": "#00BCD4",
    "desert": "#FFC107",
    "toxic": "#8BC34A",
    "magnetic": "#607D8B",
    "gas_giant": "#E91E63",
}

CELL_COLORS = {
    CellType.PRODUCER: "#4CAF50",
    CellType.HERBIVORE: "#FFC107",
    CellType.CARNIVORE: "#F44336",
}

STATUS_STYLE = {
    ConnectionState.CONNECTED: ("Connected", "#4CAF50"),
    ConnectionState.CONNECTING: ("Connecting...", "#FF9800"),
    ConnectionState.DISCONNECTED: ("Disconnected", "#F44336"),
    ConnectionState.ERROR: ("Connection Error", "#F44336"),
}


def get_planet_color(planet_type: str) -> Tuple[int, int, int]:
    return hex_to_rgb(PLANET_COLORS.get(planet_type, "#666666"))


def get_cell_color(cell_type: CellType) -> Tuple[int, int, int]:
    return hex_to_rgb(CELL_COLORS.get(cell_type, "#666666"))


def temperature_color(temperature: float) -> Tuple[int, int, int]:
    if temperature > 30:
        return hex_to_rgb("#FF5722")
    if temperature < 0:
        return hex_to_rgb("#2196F3")
    return hex_to_rgb("#4CAF50")


class UIButton:
    """Simple rectangular UI button with hover and click handling."""
    def __init__(self, label: str, x: int, y: int, w: int, h: int, font: pygame.font.Font, callback):
        self.label = label
        self.rect = pygame.Rect(x, y, w, h)
        self.font = font
        self.callback = callback
        self.hover = False

    def draw(self, surface: pygame.Surface):
        bg = (40, 44, 60) if not self.hover else (70, 80, 120)
        pygame.draw.rect(surface, bg, self.rect, border_radius=6)
        pygame.draw.rect(surface, (110, 120, 160), self.rect, 1, border_radius=6)
        txt = self.font.render(self.label, True, (220, 220, 240))
        tx = self.rect.x + (self.rect.w - txt.get_width()) // 2
        ty = self.rect.y + (self.rect.h - txt.get_height()) // 2
        surface.blit(txt, (tx, ty))

    def contains(self, pos: Tuple[int, int]) -> bool:
        return self.rect.collidepoint(pos)

    def click(self):
        if callable(self.callback):
            self.callback()


# ---------- Viewer / UI ----------


class UniverseViewer:
    """Live galaxy view with planet drill-down and a cell inspector."""

    def __init__(self, store: SnapshotStore, transport: TransportManager,
                 inspector: CellInspector, width: int = 1200, height: int = 700,
                 fps: int = 60):
        pygame.init()
        pygame.display.set_caption("Cosmic Genesis")
        self.width = width
        self.height = height
        self.fps = fps
        self.screen = pygame.display.set_mode((width, height))

        self.store = store
        self.transport = transport
        self.inspector = inspector

        self.canvas_rect = pygame.Rect(
            SIDEBAR_WIDTH, HEADER_HEIGHT, width - SIDEBAR_WIDTH, height - HEADER_HEIGHT
        )
        self.canvas = self.screen.subsurface(self.canvas_rect)

        self.font = pygame.font.SysFont("consolas", 14)
        self.small_font = pygame.font.SysFont("consolas", 12)
        self.tiny_font = pygame.font.SysFont("consolas", 10)
        self.header_font = pygame.font.SysFont("consolas", 18, bold=True)
        self.title_font = pygame.font.SysFont("consolas", 24, bold=True)

        # Fixed star field so the background does not flicker between frames
        rng = random.Random(7)
        self.stars = [
            (
                rng.randrange(self.canvas_rect.w),
                rng.randrange(self.canvas_rect.h),
                int(255 * (rng.random() * 0.8 + 0.2)),
            )
            for _ in range(STAR_COUNT)
        ]

        self.view = ViewState()
        self._seen_version = store.version

        self.inspector_rect = pygame.Rect(
            width - INSPECTOR_WIDTH - 20, HEADER_HEIGHT + 10,
            INSPECTOR_WIDTH, int((height - HEADER_HEIGHT) * 0.85),
        )
        self.close_button = UIButton(
            "x", self.inspector_rect.right - 34, HEADER_HEIGHT + 18, 24, 24,
            self.small_font, self.inspector.close,
        )

        self.running = True

    @property
    def canvas_width(self) -> int:
        return self.canvas_rect.w

    # --- state sync ---

    def sync_view(self):
        """Re-check the zoom state when a new snapshot has landed."""
        if self.store.version != self._seen_version:
            self._seen_version = self.store.version
            self.view = reconcile(self.view, self.store.current())

    # --- event handling ---

    def handle_events(self):
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.running = False
            elif event.type == pygame.KEYDOWN:
                self.handle_keydown(event.key)
            elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
                self.handle_click(event.pos)

    def handle_keydown(self, key):
        if key == pygame.K_ESCAPE:
            if self.inspector.cell_id is not None:
                self.inspector.close()
            else:
                self.running = False

    def handle_click(self, pos: Tuple[int, int]):
        if self.inspector.cell_id is not None and self.close_button.contains(pos):
            self.close_button.click()
            return
        # the open panel sits on top of the canvas
        if self.inspector.cell_id is not None and self.inspector_rect.collidepoint(pos):
            return
        if not self.canvas_rect.collidepoint(pos):
            return

        self.sync_view()
        local = (pos[0] - self.canvas_rect.x, pos[1] - self.canvas_rect.y)
        hit = resolve(local, self.store.current(), self.view, self.canvas_width)
        self.view, cell_id = apply_hit(self.view, hit)
        if cell_id is not None:
            logger.info("Inspecting cell %s", cell_id)
            self.inspector.select(cell_id)

    # --- drawing ---

    def draw(self):
        self.screen.fill((0, 0, 20))
        snapshot = self.store.current()

        self.draw_canvas(snapshot)
        self.draw_header(snapshot)
        self.draw_sidebar(snapshot)
        if self.inspector.cell_id is not None:
            self.draw_inspector()

        help_line = "Click planets to zoom in  ·  Click cells to inspect  ·  Click empty space to zoom out  ·  ESC: close/quit"
        txt = self.tiny_font.render(help_line, True, (150, 150, 150))
        self.screen.blit(txt, (SIDEBAR_WIDTH + 10, self.height - 16))

        pygame.display.flip()

    def _blit_centered(self, surface, font, text, color, center):
        txt = font.render(text, True, color)
        surface.blit(txt, (int(center[0] - txt.get_width() / 2), int(center[1] - txt.get_height() / 2)))

    def draw_canvas(self, snapshot: Optional[Snapshot]):
        canvas = self.canvas
        canvas.fill((0, 0, 20))
        for sx, sy, level in self.stars:
            canvas.set_at((sx, sy), (level, level, level))
        pygame.draw.rect(canvas, (51, 51, 51), canvas.get_rect(), 1)

        if snapshot is None or not snapshot.planets:
            if self.transport.state is ConnectionState.CONNECTED:
                message = "Loading Universe..."
            else:
                message = "Waiting for connection..."
            self._blit_centered(canvas, self.title_font, message, (255, 255, 255),
                                (canvas.get_width() / 2, canvas.get_height() / 2))
            return

        centers = planet_centers(snapshot.planets, self.canvas_width)
        for planet, center in zip(snapshot.planets, centers):
            self.draw_planet(planet, center)

    def draw_planet(self, planet: Planet, center: Tuple[float, float]):
        canvas = self.canvas
        px, py = center
        selected = self.view.is_detail_of(planet.id)

        pygame.draw.circle(canvas, get_planet_color(planet.type), (int(px), int(py)), PLANET_RADIUS)
        if selected:
            pygame.draw.circle(canvas, GOLD, (int(px), int(py)), PLANET_RADIUS, 3)
        else:
            pygame.draw.circle(canvas, (90, 90, 110), (int(px), int(py)), PLANET_RADIUS, 1)

        self._blit_centered(canvas, self.font, planet.name, (255, 255, 255), (px, py - 110))
        temp = planet.conditions.temperature
        self._blit_centered(canvas, self.small_font, f"{temp:.0f}°C", temperature_color(temp), (px, py - 95))
        self._blit_centered(canvas, self.tiny_font, f"Pop: {planet.population}", (255, 255, 255), (px, py + 100))
        if planet.total_discoveries > 0:
            self._blit_centered(canvas, self.tiny_font, f"{planet.total_discoveries} discoveries",
                                GOLD, (px, py + 112))

        if selected:
            scale = cell_scale(planet)
            radius = cell_draw_radius(scale)
            for cell in planet.cells:
                cx, cy = cell_to_screen(center, cell, scale)
                pygame.draw.circle(canvas, get_cell_color(cell.type), (int(cx), int(cy)), int(radius))
                if cell.highlighted:
                    pygame.draw.circle(canvas, GOLD, (int(cx), int(cy)), int(radius) + 1, 1)
            self.draw_planet_details(planet, int(px) + 120, int(py) - 80)
        else:
            herbivores, carnivores = overview_population_dots(planet, center)
            for dx, dy in herbivores:
                pygame.draw.circle(canvas, get_cell_color(CellType.HERBIVORE), (int(dx), int(dy)), 2)
            for dx, dy in carnivores:
                pygame.draw.circle(canvas, get_cell_color(CellType.CARNIVORE), (int(dx), int(dy)), 3)

    def draw_planet_details(self, planet: Planet, x: int, y: int):
        rect = pygame.Rect(x, y, 200, 120)
        pygame.draw.rect(self.canvas, (10, 10, 10), rect)
        pygame.draw.rect(self.canvas, (255, 255, 255), rect, 1)
        counts = planet.cell_counts
        details = [
            f"Size: {planet.width:g}x{planet.height:g}",
            f"Plants: {counts.plants}",
            f"Herbivores: {counts.herbivores}",
            f"Carnivores: {counts.carnivores}",
            f"Inventory: {planet.total_inventory} items",
            f"Materials: {planet.scattered_materials}",
            f"Trade Routes: {planet.trade_routes}",
            f"Discovery Bonus: x{planet.discovery_multiplier:.1f}",
        ]
        ty = y + 6
        for line in details:
            txt = self.small_font.render(line, True, (255, 255, 255))
            self.canvas.blit(txt, (x + 10, ty))
            ty += 13

    def draw_header(self, snapshot: Optional[Snapshot]):
        rect = pygame.Rect(0, 0, self.width, HEADER_HEIGHT)
        pygame.draw.rect(self.screen, (30, 30, 30), rect)
        pygame.draw.line(self.screen, (51, 51, 51), (0, HEADER_HEIGHT - 1), (self.width, HEADER_HEIGHT - 1), 2)

        title = self.title_font.render("Cosmic Genesis", True, (255, 255, 255))
        self.screen.blit(title, (20, 8))
        if snapshot is not None:
            step = self.font.render(f"Step {snapshot.step:,}", True, GOLD)
            self.screen.blit(step, (30 + title.get_width(), 16))
            updated = snapshot.timestamp.astimezone().strftime("%H:%M:%S")
            sub = self.small_font.render(f"Last update: {updated}", True, (204, 204, 204))
            self.screen.blit(sub, (20, 36))

        label, color = STATUS_STYLE[self.transport.state]
        status = self.font.render(label, True, (255, 255, 255))
        sx = self.width - status.get_width() - 20
        pygame.draw.circle(self.screen, hex_to_rgb(color), (sx - 12, 18), 5)
        self.screen.blit(status, (sx, 10))
        if self.transport.last_error:
            err = self.small_font.render(self.transport.last_error, True, hex_to_rgb("#F44336"))
            self.screen.blit(err, (self.width - err.get_width() - 20, 32))

    def _sidebar_lines(self, snapshot: Optional[Snapshot]) -> List[Tuple[str, Tuple[int, int, int]]]:
        white = (255, 255, 255)
        grey = (170, 170, 170)
        if snapshot is None:
            if self.transport.state is ConnectionState.CONNECTED:
                return [("Loading universe data...", grey)]
            return [("Waiting for connection...", grey)]

        lines = [(f"Planets ({len(snapshot.planets)})", GOLD)]
        for planet in snapshot.planets:
            c = planet.cell_counts
            lines.append((planet.name, white))
            lines.append((f"  Population: {planet.population}", grey))
            lines.append((f"  P{c.plants} H{c.herbivores} C{c.carnivores}  {planet.conditions.temperature:.0f}°C", grey))
            if planet.total_discoveries > 0:
                lines.append((f"  {planet.total_discoveries} discoveries", GOLD))

        stats = snapshot.discovery_stats
        lines.append(("", white))
        lines.append((f"Discoveries ({stats.total_discoveries})", GOLD))
        if not stats.recent_discoveries:
            lines.append(("  No discoveries yet...", grey))
        for d in stats.recent_discoveries:
            lines.append((f"  {d.name}", GOLD if d.significance > 15 else white))
            lines.append((f"    {d.type} · score {d.significance:.1f}", grey))
            if d.discoverer:
                lines.append((f"    by {d.discoverer.replace('Cell_', 'Cell ')}", grey))

        if snapshot.cosmic_events:
            lines.append(("", white))
            lines.append(("Cosmic Events", hex_to_rgb("#FF5722")))
            for event in snapshot.cosmic_events:
                lines.append((f"  {event.name}", white))
                if event.description:
                    lines.append((f"    {event.description}", grey))
                lines.append((f"    {event.duration} ticks · {', '.join(event.affected_planets)}", grey))
        return lines

    def draw_sidebar(self, snapshot: Optional[Snapshot]):
        rect = pygame.Rect(0, HEADER_HEIGHT, SIDEBAR_WIDTH, self.height - HEADER_HEIGHT)
        pygame.draw.rect(self.screen, (42, 42, 42), rect)
        title = self.header_font.render("Universe Stats", True, (255, 255, 255))
        self.screen.blit(title, (12, HEADER_HEIGHT + 10))

        y = HEADER_HEIGHT + 40
        for text, color in self._sidebar_lines(snapshot):
            if y > self.height - 20:
                break
            if text:
                txt = self.small_font.render(text, True, color)
                self.screen.blit(txt, (12, y))
            y += 15

    def _inspector_lines(self) -> List[Tuple[str, Tuple[int, int, int]]]:
        white = (255, 255, 255)
        grey = (204, 204, 204)
        result = self.inspector.result
        if self.inspector.loading or result is None:
            return [("Loading cell data...", white)]
        if not result.ok:
            return [(result.message or "Unknown error", hex_to_rgb("#F44336"))]

        d = result.details
        lines = [
            (f"{d.type} #{d.id}", white),
            (f"Position: ({d.position[0]:g}, {d.position[1]:g})", grey),
            ("", white),
            ("Vital Statistics", GOLD),
            (f"  Age: {d.age} ticks", white),
        ]
        if d.energy is not None:
            lines.append((f"  Energy: {d.energy:g}/100", white))
        if d.curiosity is not None:
            lines.append((f"  Curiosity: {d.curiosity_level}", white))
        if d.experimentation_cooldown is not None:
            lines.append((f"  Cooldown: {d.experimentation_cooldown}", white))
        brain = d.brain_info
        if brain.fitness is not None or brain.generation is not None:
            lines.append(("Neural Network", hex_to_rgb("#9C27B0")))
            if brain.fitness is not None:
                lines.append((f"  Fitness: {brain.fitness:.2f}", white))
            if brain.generation is not None:
                lines.append((f"  Generation: {brain.generation}", white))

        lines.append((f"Inventory ({len(d.inventory)} items)", hex_to_rgb("#FF9800")))
        if not d.inventory:
            lines.append(("  No items", grey))
        for item in d.inventory:
            lines.append((f"  {item.name}", white))
            if item.properties:
                lines.append((f"    {', '.join(item.properties)}", grey))

        lines.append((f"Knowledge ({len(d.known_discoveries)} discoveries)", hex_to_rgb("#4CAF50")))
        if not d.known_discoveries:
            lines.append(("  No discoveries yet", grey))
        for disc in d.known_discoveries:
            lines.append((f"  {disc.name}", GOLD if disc.significance > 15 else white))
            lines.append((f"    {disc.type} · significance {disc.significance:.1f}", grey))

        lines.append(("", white))
        lines.append((f"This cell is {d.activity}", (136, 136, 136)))
        return lines

    def draw_inspector(self):
        rect = self.inspector_rect
        x, y, h = rect.x, rect.y, rect.h
        pygame.draw.rect(self.screen, (30, 30, 30), rect)
        pygame.draw.rect(self.screen, (51, 51, 51), rect, 2)

        title = self.header_font.render("Cell Inspector", True, (255, 255, 255))
        self.screen.blit(title, (x + 14, y + 10))
        self.close_button.hover = self.close_button.contains(pygame.mouse.get_pos())
        self.close_button.draw(self.screen)

        ty = y + 46
        for text, color in self._inspector_lines():
            if ty > y + h - 16:
                break
            if text:
                txt = self.small_font.render(text, True, color)
                self.screen.blit(txt, (x + 14, ty))
            ty += 15

    # --- main loop ---

    async def run(self):
        """Frame loop; shares the event loop with the transport and fetches."""
        frame = 1.0 / max(1, self.fps)
        try:
            while self.running:
                self.handle_events()
                self.sync_view()
                self.draw()
                await asyncio.sleep(frame)
        finally:
            await self.transport.close("Viewer closed")
            await self.inspector.fetcher.aclose()
            pygame.quit()
