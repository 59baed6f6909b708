"""Static catalog of print sizes, photo layouts, papers and poster grids.

All layouts assume a letter sheet (8.5" x 11") and keep every slot inside
the safe printing zone: 0.25" from the top, left and right edges and 0.5"
from the bottom edge. Layouts are versioned by id and never mutated; a
retired layout stays resolvable by id for old orders but is no longer
listed or recommended.
"""

import logging

from pydantic import BaseModel, ConfigDict, Field

from printengine.config import PAPER_TYPES
from printengine.errors import LayoutNotFound
from printengine.validation import Layout, PhotoSize, PixelSize, PrintSize, Slot

logger = logging.getLogger(__name__)


# Sizes used for quality scoring and size recommendation, smallest first
PRINT_SIZES: dict[str, PrintSize] = {
    size.name: size
    for size in (
        PrintSize(name="4x6", width_in=4, height_in=6,
                  optimal_px=PixelSize(w=1200, h=1800), min_px=PixelSize(w=600, h=900)),
        PrintSize(name="5x7", width_in=5, height_in=7,
                  optimal_px=PixelSize(w=1500, h=2100), min_px=PixelSize(w=750, h=1050)),
        PrintSize(name="8x10", width_in=8, height_in=10,
                  optimal_px=PixelSize(w=2400, h=3000), min_px=PixelSize(w=1200, h=1500)),
        PrintSize(name="Carta", width_in=8.5, height_in=11,
                  optimal_px=PixelSize(w=2550, h=3300), min_px=PixelSize(w=1275, h=1650)),
    )
}

PHOTO_SIZES: dict[str, PhotoSize] = {
    size.name: size
    for size in (
        PhotoSize(name="4x6", display_name="4x6 pulgadas", width_in=4, height_in=6, max_per_sheet=2),
        PhotoSize(name="5x7", display_name="5x7 pulgadas", width_in=5, height_in=7, max_per_sheet=1),
        PhotoSize(name="3x5", display_name="3x5 pulgadas", width_in=3, height_in=5, max_per_sheet=4),
        PhotoSize(name="wallet", display_name="Wallet (2x3)", width_in=2, height_in=3, max_per_sheet=12),
        PhotoSize(name="carnet", display_name="Carnet (1.5x2)", width_in=1.5, height_in=2, max_per_sheet=16),
        PhotoSize(name="full", display_name="Hoja Completa (8x10.25)", width_in=8, height_in=10.25,
                  max_per_sheet=1),
    )
}

_PHOTO_PAPERS = ("fotografico", "bond_normal", "opalina")
_SMALL_PHOTO_PAPERS = ("fotografico", "bond_normal")


def _grid(xs: tuple[float, ...], ys: tuple[float, ...], width: float, height: float) -> tuple[Slot, ...]:
    """Slots for every (x, y) pair, row by row, top to bottom."""
    return tuple(Slot(x=x, y=y, width=width, height=height) for y in ys for x in xs)


LAYOUTS: tuple[Layout, ...] = (
    # Full sheet: the whole printable area, 8" x 10.25"
    Layout(
        id="1x-full", display_name="Hoja Completa", description="Una imagen que ocupa toda la hoja",
        photo_size="full", photo_width_in=8, photo_height_in=10.25, photos_per_sheet=1,
        allows_different=False,
        positions=_grid((0.25,), (0.25,), 8, 10.25),
        compatible_papers=("fotografico", "bond_normal", "opalina", "sticker_semigloss"),
        sort_order=0,
    ),
    # x = 0.25 + (8.0 - 4) / 2, y = 0.25 + (10.25 - 6) / 2
    Layout(
        id="1x-4x6", display_name="1 Foto 4x6", description="Una foto 4x6 centrada en carta",
        photo_size="4x6", photo_width_in=4, photo_height_in=6, photos_per_sheet=1,
        allows_different=False,
        positions=_grid((2.25,), (2.375,), 4, 6),
        compatible_papers=_PHOTO_PAPERS, sort_order=1,
    ),
    # Two 4" photos fill the 8" printable width exactly
    Layout(
        id="2x-4x6", display_name="2 Fotos 4x6", description="Dos fotos 4x6 lado a lado",
        photo_size="4x6", photo_width_in=4, photo_height_in=6, photos_per_sheet=2,
        positions=_grid((0.25, 4.25), (2.375,), 4, 6),
        compatible_papers=_PHOTO_PAPERS, sort_order=2,
    ),
    Layout(
        id="1x-5x7", display_name="1 Foto 5x7", description="Una foto 5x7 centrada en carta",
        photo_size="5x7", photo_width_in=5, photo_height_in=7, photos_per_sheet=1,
        allows_different=False,
        positions=_grid((1.75,), (1.875,), 5, 7),
        compatible_papers=_PHOTO_PAPERS, sort_order=3,
    ),
    # 2 x 5" + 0.25" gap = 10.25", fills the printable height
    Layout(
        id="2x-3x5", display_name="2 Fotos 3x5", description="Dos fotos 3x5",
        photo_size="3x5", photo_width_in=3, photo_height_in=5, photos_per_sheet=2,
        positions=_grid((2.75,), (0.25, 5.5), 3, 5),
        compatible_papers=_PHOTO_PAPERS, sort_order=4,
    ),
    Layout(
        id="4x-3x5", display_name="4 Fotos 3x5", description="Cuatro fotos 3x5",
        photo_size="3x5", photo_width_in=3, photo_height_in=5, photos_per_sheet=4,
        positions=_grid((1.0, 4.5), (0.25, 5.5), 3, 5),
        compatible_papers=_PHOTO_PAPERS, sort_order=5,
    ),
    # Wallets scaled to 1.875" x 2.8125" so four fit across the safe width
    Layout(
        id="4x-wallet", display_name="4 Wallet", description="Cuatro fotos tamano cartera",
        photo_size="wallet", photo_width_in=1.875, photo_height_in=2.8125, photos_per_sheet=4,
        positions=_grid((0.3125, 2.3125, 4.3125, 6.3125), (3.96875,), 1.875, 2.8125),
        compatible_papers=_SMALL_PHOTO_PAPERS, sort_order=6,
    ),
    Layout(
        id="6x-wallet", display_name="6 Wallet", description="Seis fotos tamano cartera",
        photo_size="wallet", photo_width_in=2, photo_height_in=3, photos_per_sheet=6,
        positions=_grid((1.0, 3.25, 5.5), (2.25, 5.5), 2, 3),
        compatible_papers=_SMALL_PHOTO_PAPERS, sort_order=7,
    ),
    Layout(
        id="12x-wallet", display_name="12 Wallet", description="Doce fotos tamano cartera",
        photo_size="wallet", photo_width_in=1.875, photo_height_in=2.8125, photos_per_sheet=12,
        positions=_grid((0.3125, 2.3125, 4.3125, 6.3125), (0.90625, 3.96875, 7.03125), 1.875, 2.8125),
        compatible_papers=_SMALL_PHOTO_PAPERS, sort_order=8,
    ),
    Layout(
        id="9x-carnet", display_name="9 Carnet", description="Nueve fotos tipo carnet",
        photo_size="carnet", photo_width_in=1.5, photo_height_in=2, photos_per_sheet=9,
        positions=_grid((1.5, 3.5, 5.5), (1.625, 4.375, 7.125), 1.5, 2),
        compatible_papers=_SMALL_PHOTO_PAPERS, sort_order=9,
    ),
    Layout(
        id="16x-carnet", display_name="16 Carnet", description="Dieciseis fotos tipo carnet",
        photo_size="carnet", photo_width_in=1.5, photo_height_in=2, photos_per_sheet=16,
        positions=_grid((0.875, 2.625, 4.375, 6.125), (1.0, 3.25, 5.5, 7.75), 1.5, 2),
        compatible_papers=_SMALL_PHOTO_PAPERS, sort_order=10,
    ),
)


class PosterConfig(BaseModel):
    """Grid of sheets a poster image is split across."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    rows: int = Field(ge=1)
    cols: int = Field(ge=1)

    @property
    def sheets(self) -> int:
        return self.rows * self.cols


POSTER_CONFIGS: dict[str, PosterConfig] = {
    config.id: config
    for config in (
        PosterConfig(id="2x1", name="2 hojas horizontal", rows=1, cols=2),
        PosterConfig(id="1x2", name="2 hojas vertical", rows=2, cols=1),
        PosterConfig(id="2x2", name="4 hojas (2x2)", rows=2, cols=2),
        PosterConfig(id="3x2", name="6 hojas (3x2)", rows=2, cols=3),
        PosterConfig(id="2x3", name="6 hojas (2x3)", rows=3, cols=2),
        PosterConfig(id="3x3", name="9 hojas (3x3)", rows=3, cols=3),
        PosterConfig(id="4x3", name="12 hojas (4x3)", rows=3, cols=4),
        PosterConfig(id="3x4", name="12 hojas (3x4)", rows=4, cols=3),
    )
}


class LayoutCatalog:
    """Read-only registry of letter layouts, indexed by id and photo size."""

    def __init__(self, layouts: tuple[Layout, ...] = LAYOUTS) -> None:
        self._by_id = {layout.id: layout for layout in layouts}
        if len(self._by_id) != len(layouts):
            raise ValueError("Duplicate layout ids in catalog")
        self._ordered = tuple(sorted(layouts, key=lambda layout: layout.sort_order))

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self):
        return iter(self._ordered)

    def get(self, layout_id: str) -> Layout:
        """Look up a layout by id, including retired ones.

        Raises:
            LayoutNotFound: If the id is unknown. A default is never substituted.
        """
        try:
            return self._by_id[layout_id]
        except KeyError:
            logger.warning(f"Layout not found in catalog: {layout_id}")
            raise LayoutNotFound(layout_id) from None

    def list_active(self) -> list[Layout]:
        return [layout for layout in self._ordered if layout.is_active]

    def list_by_photo_size(self, photo_size: str) -> list[Layout]:
        """Active layouts for a photo size, in display order."""
        return [layout for layout in self.list_active() if layout.photo_size == photo_size]

    def best_for(self, photo_size: str) -> Layout:
        """Layout with the most photos per sheet for a photo size.

        Ties keep display order.

        Raises:
            LayoutNotFound: If no active layout packs this photo size
        """
        candidates = self.list_by_photo_size(photo_size)
        if not candidates:
            raise LayoutNotFound(photo_size)
        return max(candidates, key=lambda layout: layout.photos_per_sheet)

    def available_photo_sizes(self) -> list[str]:
        """Photo sizes with at least one active layout, in display order."""
        sizes: list[str] = []
        for layout in self.list_active():
            if layout.photo_size not in sizes:
                sizes.append(layout.photo_size)
        return sizes

    def papers_for_layout(self, layout_id: str) -> list[str]:
        return list(self.get(layout_id).compatible_papers)


CATALOG = LayoutCatalog()


def get_print_size(name: str) -> PrintSize:
    """Look up a print size by name.

    Raises:
        KeyError: If the size is not in PRINT_SIZES
    """
    if name not in PRINT_SIZES:
        raise KeyError(f"Unknown print size: {name}")
    return PRINT_SIZES[name]


def get_poster_config(config_id: str) -> PosterConfig:
    if config_id not in POSTER_CONFIGS:
        raise KeyError(f"Unknown poster config: {config_id}")
    return POSTER_CONFIGS[config_id]


def papers_for_product(product: str) -> list[str]:
    """Paper codes usable for a product kind ("document" or "photo")."""
    return [code for code, paper in PAPER_TYPES.items() if product in paper["products"]]


def recommended_paper(product: str) -> str | None:
    """Recommended paper for a product kind, else its first compatible paper."""
    compatible = papers_for_product(product)
    for code in compatible:
        if PAPER_TYPES[code]["recommended"]:
            return code
    return compatible[0] if compatible else None
