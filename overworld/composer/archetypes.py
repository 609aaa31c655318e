"""
Archetype registry: the catalog of reference building layouts.

Every town is a permutation of the same building types (weapon shop,
tavern, house, library...) placed uniquely and coloured by biome. The
registry names those types and lazily loads their reference layout, a
collision mask read from a JSON sidecar next to the reference map:

    {"width": 25, "height": 22, "collision": [0, 1, 1, ...]}

`collision` is row-major, non-zero meaning blocked. A caller can inject
any other loader (for example one that parses the map file itself).
"""

import json
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from overworld.config import get_logger
from overworld.composer.errors import ArchetypeLoadError, UnknownArchetypeError

CATEGORIES = ('interior', 'exterior', 'terrain')

INTERIOR_DIR = "interiors/premium/Tiled/Tilemaps"


@dataclass
class ArchetypeDefinition:
    id: str
    name: str
    role: str
    category: str
    pack: str
    layout_path: str  # relative to the assets root
    approx_size: Tuple[int, int]
    description: str = ''
    tags: List[str] = field(default_factory=list)


@dataclass
class ReferenceLayout:
    """Parsed reference data for one archetype."""
    archetype_id: str
    width: int
    height: int
    blocked: np.ndarray  # bool [y, x]

    @property
    def blocked_count(self) -> int:
        return int(np.count_nonzero(self.blocked))


def _interior(archetype_id, name, file_stem, size, description, tags):
    return ArchetypeDefinition(
        id=archetype_id, name=name, role=archetype_id, category='interior', pack='premium',
        layout_path=f"{INTERIOR_DIR}/{file_stem}.json", approx_size=size,
        description=description, tags=tags + ['interior'],
    )


def _scene(archetype_id, name, pack, file_stem, size, description, tags):
    return ArchetypeDefinition(
        id=archetype_id, name=name, role='scene-template', category='exterior', pack=pack,
        layout_path=f"exteriors/{pack}/Tiled/Tilemaps/{file_stem}.json", approx_size=size,
        description=description, tags=tags + ['scene-template'],
    )


BUILTIN_ARCHETYPES = [
    _interior('weapon-shop', 'Weapon Shop', 'WeaponSeller_1', (25, 22),
              'A weapon shop with counter, display racks and a forge area',
              ['shop', 'combat', 'town-service']),
    _interior('house-small', 'Small House', 'House_1', (20, 19),
              'A cozy 2-room cottage with bedroom, living area and fireplace',
              ['house', 'residential', 'npc-home']),
    _interior('house-medium', 'Medium House', 'House_2', (22, 20),
              'A larger house with multiple rooms, suitable for families',
              ['house', 'residential', 'npc-home']),
    _interior('tavern', 'Tavern', 'Tavern_1', (25, 22),
              'A lively tavern with bar, seating area, kitchen and upstairs rooms',
              ['shop', 'inn', 'social', 'town-service']),
    _interior('library', 'Library', 'Library_1', (22, 20),
              'A library with bookshelves, reading tables and scroll storage',
              ['knowledge', 'lore', 'town-service']),
    _interior('butchery', 'Butchery', 'Butchery_1', (20, 18),
              'A butcher shop with meat counter and cold storage',
              ['shop', 'food', 'town-service']),
    _interior('tailor', 'Tailor Shop', 'TailorShop_1', (22, 20),
              'A tailor shop with fabric rolls, mannequins and sewing area',
              ['shop', 'armor', 'town-service']),
    _interior('cartographer', 'Cartographer', 'Cartographer_1', (22, 20),
              'A map-maker workshop with drafting tables and scroll racks',
              ['knowledge', 'maps', 'town-service']),
    _interior('fisherman-hut', 'Fisherman Hut', 'FishermanHut_1', (18, 16),
              'A small fishing hut with nets, tackle and a sleeping area',
              ['house', 'fishing', 'coastal']),
    _interior('huntmaster', 'Huntmaster Lodge', 'Huntmaster_1', (22, 20),
              'A hunting lodge with trophies, weapon racks and pelts',
              ['combat', 'hunting', 'guild']),
    _interior('castle-room', 'Castle Great Hall', 'Castle_1', (30, 25),
              'A grand castle hall with throne, banquet tables and tapestries',
              ['castle', 'throne', 'boss']),

    _scene('farm-shore', 'Farm Shore', 'premium', 'Farm Shore', (40, 45),
           'Farmland scene: fields, fences, road network, shoreline',
           ['farmland', 'fields', 'shore', 'road']),
    _scene('village-bridge', 'Village Bridge', 'premium', 'Village Bridge', (60, 36),
           'Village scene: buildings, bridge, river, road network',
           ['village', 'bridge', 'river', 'road', 'buildings']),
    _scene('desert-town', 'Desert Town', 'desert', 'Desert Town', (50, 40),
           'Desert village with sandstone buildings and oasis',
           ['desert', 'town', 'oasis']),
    _scene('mountain-village', 'Mountain Village', 'snow', 'Mountain Village', (50, 40),
           'A mountain village with snow, slopes and warm cabins',
           ['mountain', 'snow', 'village']),
    _scene('frost-peak', 'Frost Peak', 'snow', 'Frost Peak', (40, 40),
           'A frozen mountain peak with ice formations',
           ['mountain', 'snow', 'peak']),
    _scene('forest-keep', 'Forest Keep', 'castles', 'Forest Keep', (50, 40),
           'A castle keep nestled in dense forest',
           ['castle', 'forest', 'fortified']),
]


def read_json_layout(path: str) -> dict:
    """Default loader: read a JSON collision sidecar."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


class ArchetypeRegistry:
    """
    Named building archetypes with lazily loaded reference layouts.

    Args:
        assets_root: Directory the archetypes' layout paths are relative to
        loader: Callable(path) -> {"width", "height", "collision"}; defaults
            to reading the JSON sidecar
    """

    def __init__(self, assets_root: Optional[str] = None,
                 loader: Optional[Callable[[str], dict]] = None):
        self.logger = get_logger(__name__)
        self.assets_root = assets_root or 'assets/tilesets'
        self.loader = loader or read_json_layout
        self._archetypes: Dict[str, ArchetypeDefinition] = {}
        self._cache: Dict[str, ReferenceLayout] = {}

        for definition in BUILTIN_ARCHETYPES:
            self.register(definition)

    # -------------------------
    # Catalog queries
    # -------------------------

    def register(self, definition: ArchetypeDefinition):
        """Add or replace an archetype (drops any cached layout for it)."""
        self._archetypes[definition.id] = definition
        self._cache.pop(definition.id, None)

    def get(self, archetype_id: str) -> Optional[ArchetypeDefinition]:
        return self._archetypes.get(archetype_id)

    def all(self) -> List[ArchetypeDefinition]:
        return list(self._archetypes.values())

    def by_role(self, role: str) -> List[ArchetypeDefinition]:
        return [a for a in self.all() if a.role == role]

    def by_category(self, category: str) -> List[ArchetypeDefinition]:
        return [a for a in self.all() if a.category == category]

    def by_tag(self, tag: str) -> List[ArchetypeDefinition]:
        return [a for a in self.all() if tag in a.tags]

    def by_pack(self, pack: str) -> List[ArchetypeDefinition]:
        return [a for a in self.all() if a.pack == pack]

    def __contains__(self, archetype_id):
        return archetype_id in self._archetypes

    def __len__(self):
        return len(self._archetypes)

    # -------------------------
    # Reference layouts
    # -------------------------

    def load(self, archetype_id: str) -> ReferenceLayout:
        """
        Load (and cache) an archetype's reference layout.

        Raises:
            UnknownArchetypeError: If the id is not registered
            ArchetypeLoadError: If the layout cannot be read or is malformed
        """
        definition = self._archetypes.get(archetype_id)
        if definition is None:
            raise UnknownArchetypeError(f"Unknown archetype: {archetype_id}")

        cached = self._cache.get(archetype_id)
        if cached is not None:
            return cached

        path = os.path.join(self.assets_root, definition.layout_path)
        try:
            raw = self.loader(path)
            width, height = int(raw['width']), int(raw['height'])
            collision = np.asarray(raw['collision'], dtype=np.int64)
            blocked = collision.reshape((height, width)) != 0
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise ArchetypeLoadError(f"Cannot load archetype '{archetype_id}' from {path}: {e}") from e

        layout = ReferenceLayout(archetype_id, width, height, blocked)
        self._cache[archetype_id] = layout
        self.logger.debug(f"Loaded archetype '{archetype_id}' ({width}x{height}, {layout.blocked_count} blocked)")
        return layout

    def try_load(self, archetype_id: str) -> Optional[ReferenceLayout]:
        """Like load(), but logs a warning and returns None on failure."""
        try:
            return self.load(archetype_id)
        except (UnknownArchetypeError, ArchetypeLoadError) as e:
            self.logger.warning(f"Archetype '{archetype_id}' unavailable, using placeholder: {e}")
            return None

    def summary(self) -> str:
        """Human-readable catalog listing grouped by category."""
        lines = [f"Archetype Registry: {len(self)} archetypes", '']

        for category in CATEGORIES:
            items = self.by_category(category)
            if not items:
                continue
            lines.append(f"{category.upper()} ({len(items)}):")
            for item in items:
                size = f"{item.approx_size[0]}x{item.approx_size[1]}"
                lines.append(f"  {item.id:<20} {size:<8} {item.description[:60]}")
            lines.append('')

        return '\n'.join(lines)
