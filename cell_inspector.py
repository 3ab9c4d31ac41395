"""
cell_inspector.py

On-demand cell details: GET {api_url}/api/cell/{id}.

Three kinds of failure are kept apart so the panel can say which one hit:
the server answered 200 with an "error" field (e.g. the cell died), the
server answered non-2xx, or the request never got an answer.

Dependencies
-----------
    pip install httpx
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

HTTP_ERROR_MESSAGE = "Failed to fetch cell details"
NETWORK_ERROR_MESSAGE = "Network error"


# ---------- Data model ----------


@dataclass(frozen=True)
class InventoryItem:
    name: str
    properties: Tuple[str, ...] = ()


@dataclass(frozen=True)
class KnownDiscovery:
    name: str
    significance: float
    type: str


@dataclass(frozen=True)
class BrainInfo:
    fitness: Optional[float] = None
    generation: Optional[int] = None


@dataclass(frozen=True)
class CellDetails:
    id: int
    type: str
    position: Tuple[float, float]
    age: int
    energy: Optional[float] = None
    curiosity: Optional[float] = None
    experimentation_cooldown: Optional[int] = None
    inventory: Tuple[InventoryItem, ...] = ()
    known_discoveries: Tuple[KnownDiscovery, ...] = ()
    brain_info: BrainInfo = BrainInfo()

    @property
    def curiosity_level(self) -> str:
        c = self.curiosity
        if not c:
            return "N/A"
        if c > 0.7:
            return "Very High"
        if c > 0.5:
            return "High"
        if c > 0.3:
            return "Medium"
        return "Low"

    @property
    def activity(self) -> str:
        if self.experimentation_cooldown and self.experimentation_cooldown > 0:
            return "resting from experimentation"
        if len(self.inventory) >= 2:
            return "ready to experiment"
        return "looking for materials"

    @classmethod
    def from_dict(cls, raw: dict) -> "CellDetails":
        position = raw.get("position") or (0, 0)
        brain = raw.get("brain_info") or {}
        energy = raw.get("energy")
        curiosity = raw.get("curiosity")
        cooldown = raw.get("experimentation_cooldown")
        generation = brain.get("generation")
        fitness = brain.get("fitness")
        return cls(
            id=int(raw["id"]),
            type=str(raw.get("type", "unknown")),
            position=(float(position[0]), float(position[1])),
            age=int(raw.get("age", 0)),
            energy=float(energy) if energy is not None else None,
            curiosity=float(curiosity) if curiosity is not None else None,
            experimentation_cooldown=int(cooldown) if cooldown is not None else None,
            inventory=tuple(
                InventoryItem(str(item["name"]), tuple(str(p) for p in item.get("properties", [])))
                for item in raw.get("inventory", [])
            ),
            known_discoveries=tuple(
                KnownDiscovery(str(d["name"]), float(d.get("significance", 0.0)), str(d.get("type", "")))
                for d in raw.get("known_discoveries", [])
            ),
            brain_info=BrainInfo(
                fitness=float(fitness) if fitness is not None else None,
                generation=int(generation) if generation is not None else None,
            ),
        )


class FetchStatus(Enum):
    OK = "ok"
    DOMAIN_ERROR = "domain_error"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"


@dataclass(frozen=True)
class FetchResult:
    cell_id: int
    status: FetchStatus
    details: Optional[CellDetails] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK


# ---------- Fetching ----------


class CellDetailFetcher:
    def __init__(self, api_url: str, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 10.0):
        self.api_url = api_url.rstrip("/")
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(timeout=timeout)

    async def fetch(self, cell_id: int) -> FetchResult:
        url = f"{self.api_url}/api/cell/{cell_id}"
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Cell %s: HTTP %s", cell_id, e.response.status_code)
            return FetchResult(cell_id, FetchStatus.HTTP_ERROR, message=HTTP_ERROR_MESSAGE)
        except (httpx.RequestError, httpx.InvalidURL, ValueError) as e:
            logger.error("Failed to fetch cell details for %s: %s", cell_id, e)
            return FetchResult(cell_id, FetchStatus.NETWORK_ERROR, message=NETWORK_ERROR_MESSAGE)

        if isinstance(data, dict) and data.get("error"):
            return FetchResult(cell_id, FetchStatus.DOMAIN_ERROR, message=str(data["error"]))
        try:
            details = CellDetails.from_dict(data)
        except (KeyError, TypeError, ValueError, IndexError, AttributeError) as e:
            logger.error("Unreadable cell details for %s: %s", cell_id, e)
            return FetchResult(cell_id, FetchStatus.NETWORK_ERROR, message=NETWORK_ERROR_MESSAGE)
        return FetchResult(cell_id, FetchStatus.OK, details=details)

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()


class CellInspector:
    """
    Tracks which cell is being inspected and the latest answer for it.

    Every fetch is tagged with the cell id it was issued for; an answer that
    arrives after the selection moved on is dropped instead of overwriting
    the newer cell's panel.
    """

    def __init__(self, fetcher: CellDetailFetcher):
        self.fetcher = fetcher
        self.cell_id: Optional[int] = None
        self.result: Optional[FetchResult] = None
        self.loading = False
        self._task: Optional[asyncio.Task] = None

    def select(self, cell_id: int) -> asyncio.Task:
        self.cell_id = cell_id
        self.result = None
        self.loading = True
        self._task = asyncio.get_running_loop().create_task(self._load(cell_id))
        return self._task

    def close(self):
        self.cell_id = None
        self.result = None
        self.loading = False

    async def _load(self, cell_id: int):
        try:
            result = await self.fetcher.fetch(cell_id)
        except Exception:
            logger.exception("Cell detail fetch for %s crashed", cell_id)
            result = FetchResult(cell_id, FetchStatus.NETWORK_ERROR, message=NETWORK_ERROR_MESSAGE)
        if cell_id != self.cell_id:
            logger.debug("Discarding stale details for cell %s", cell_id)
            return
        self.result = result
        self.loading = False
