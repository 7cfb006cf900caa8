"""Virtual-scrolling window math for long lists and card grids.

Given how many items there are, how big each one is and where the viewport
sits, work out which items have to be materialized and where the rendered
block must be translated so it lines up with the scroll track. Everything
here is a pure function of its spec; `ScrollTracker` is the only stateful
piece and just remembers the latest scroll input.
"""

import math
import threading
from typing import Any, Callable, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, field_validator

from debounce import Debouncer

DEFAULT_OVERSCAN = 5
DEFAULT_GRID_GAP = 16
# used when the container width is not known yet
DEFAULT_GRID_COLUMNS = 3
SCROLL_SETTLE_MS = 150


class WindowSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_count: int
    item_size: float
    viewport_size: float
    scroll_offset: float = 0
    overscan: int = DEFAULT_OVERSCAN
    estimated_item_size: Optional[float] = None

    @field_validator("item_count", "viewport_size", "scroll_offset", "overscan")
    @classmethod
    def _clamp_negative(cls, value):
        return max(0, value)

    @field_validator("item_size")
    @classmethod
    def _positive_size(cls, value):
        if value <= 0:
            raise ValueError("item_size must be positive")
        return value

    @field_validator("estimated_item_size")
    @classmethod
    def _positive_estimate(cls, value):
        if value is not None and value <= 0:
            raise ValueError("estimated_item_size must be positive")
        return value

    @property
    def effective_item_size(self) -> float:
        # uniform override only, items never get individual sizes
        return self.estimated_item_size or self.item_size


class VisibleRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_index: int = 0
    end_index: int = 0
    item_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.item_count == 0

    def indices(self) -> range:
        if self.is_empty:
            return range(0)
        return range(self.start_index, self.end_index + 1)

    def __len__(self) -> int:
        return len(self.indices())


class WindowLayout(BaseModel):
    model_config = ConfigDict(frozen=True)

    visible_range: VisibleRange
    total_extent: float
    render_offset: float


class GridWindowSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_count: int
    item_width: float
    item_height: float
    viewport_size: float
    container_width: Optional[float] = None
    gap: float = DEFAULT_GRID_GAP
    scroll_offset: float = 0
    overscan: int = DEFAULT_OVERSCAN

    @field_validator("item_count", "viewport_size", "scroll_offset", "overscan")
    @classmethod
    def _clamp_negative(cls, value):
        return max(0, value)

    @field_validator("container_width")
    @classmethod
    def _clamp_width(cls, value):
        if value is None:
            return value
        return max(0, value)

    @field_validator("item_width", "item_height")
    @classmethod
    def _positive_size(cls, value):
        if value <= 0:
            raise ValueError("item dimensions must be positive")
        return value

    @field_validator("gap")
    @classmethod
    def _non_negative_gap(cls, value):
        if value < 0:
            raise ValueError("gap must be >= 0")
        return value

    @property
    def columns(self) -> int:
        if self.container_width is None:
            return DEFAULT_GRID_COLUMNS
        return max(1, math.floor((self.container_width + self.gap) / (self.item_width + self.gap)))

    @property
    def rows(self) -> int:
        return math.ceil(self.item_count / self.columns)

    @property
    def row_height(self) -> float:
        return self.item_height + self.gap


class VisibleRowRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_row: int = 0
    end_row: int = 0
    rows: int = 0
    columns: int = 1
    item_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.rows == 0

    def row_indices(self) -> range:
        if self.is_empty:
            return range(0)
        return range(self.start_row, self.end_row + 1)

    def indices(self) -> List[int]:
        return [
            row * self.columns + col
            for row in self.row_indices()
            for col in range(self.columns)
            if row * self.columns + col < self.item_count
        ]

    def __len__(self) -> int:
        return len(self.indices())


class GridWindowLayout(BaseModel):
    model_config = ConfigDict(frozen=True)

    visible_range: VisibleRowRange
    total_extent: float
    render_offset: float


class VisibleItem(BaseModel):
    index: int
    item: Any
    key: Any
    row: Optional[int] = None
    col: Optional[int] = None


def _window_bounds(count: int, size: float, extent: float, viewport: float,
                   offset: float, overscan: int):
    # overscroll is pulled back to the last valid position instead of failing
    offset = min(offset, max(0, extent - viewport))
    start = max(0, math.floor(offset / size) - overscan)
    raw_end = math.ceil((offset + viewport) / size)
    end = min(count - 1, raw_end + overscan)
    return min(start, end), end


def compute_visible_range(spec: WindowSpec) -> VisibleRange:
    if spec.item_count == 0:
        return VisibleRange()
    size = spec.effective_item_size
    start, end = _window_bounds(
        spec.item_count, size, spec.item_count * size,
        spec.viewport_size, spec.scroll_offset, spec.overscan,
    )
    return VisibleRange(start_index=start, end_index=end, item_count=spec.item_count)


def compute_layout(spec: WindowSpec) -> WindowLayout:
    visible = compute_visible_range(spec)
    size = spec.effective_item_size
    return WindowLayout(
        visible_range=visible,
        total_extent=spec.item_count * size,
        render_offset=visible.start_index * size,
    )


def _grid_extent(spec: GridWindowSpec) -> float:
    rows = spec.rows
    if rows == 0:
        return 0
    # no gap after the last row
    return rows * spec.row_height - spec.gap


def compute_visible_row_range(spec: GridWindowSpec) -> VisibleRowRange:
    rows = spec.rows
    columns = spec.columns
    if rows == 0:
        return VisibleRowRange(columns=columns)
    start, end = _window_bounds(
        rows, spec.row_height, _grid_extent(spec),
        spec.viewport_size, spec.scroll_offset, spec.overscan,
    )
    return VisibleRowRange(
        start_row=start, end_row=end, rows=rows, columns=columns, item_count=spec.item_count,
    )


def compute_grid_layout(spec: GridWindowSpec) -> GridWindowLayout:
    visible = compute_visible_row_range(spec)
    return GridWindowLayout(
        visible_range=visible,
        total_extent=_grid_extent(spec),
        render_offset=visible.start_row * spec.row_height,
    )


def default_item_key(item: Any, index: int) -> Any:
    if isinstance(item, dict):
        key = item.get("id")
    else:
        key = getattr(item, "id", None)
    return key if key else index


def visible_items(items: Sequence[Any], layout: Union[WindowLayout, GridWindowLayout],
                  key: Optional[Callable[[Any, int], Any]] = None) -> List[VisibleItem]:
    """Materialize the slice of `items` that `layout` says is on screen."""
    key = key or default_item_key
    visible = layout.visible_range
    result = []
    if isinstance(visible, VisibleRowRange):
        for index in visible.indices():
            if index >= len(items):
                break
            row, col = divmod(index, visible.columns)
            result.append(VisibleItem(index=index, item=items[index], key=key(items[index], index), row=row, col=col))
        return result
    for index in visible.indices():
        if index >= len(items):
            break
        result.append(VisibleItem(index=index, item=items[index], key=key(items[index], index)))
    return result


class ScrollTracker:
    """Keeps the latest scroll/viewport input for one scroll container.

    The rendering side calls `scroll_to` and `resize` as events arrive and
    `layout()` whenever it needs to draw. `is_scrolling` stays true until no
    scroll event has arrived for SCROLL_SETTLE_MS.
    """

    def __init__(self, spec: Union[WindowSpec, GridWindowSpec], settle_ms: float = SCROLL_SETTLE_MS,
                 timer_factory: Callable[..., Any] = threading.Timer):
        self.spec = spec
        self.is_scrolling = False
        self._settle = Debouncer(self._settled, settle_ms, timer_factory=timer_factory)

    def scroll_to(self, offset: float) -> None:
        self.spec = self._respec(scroll_offset=offset)
        self.is_scrolling = True
        self._settle.schedule()

    def resize(self, viewport_size: float, container_width: Optional[float] = None) -> None:
        changes = {"viewport_size": viewport_size}
        if container_width is not None and isinstance(self.spec, GridWindowSpec):
            changes["container_width"] = container_width
        self.spec = self._respec(**changes)

    def set_item_count(self, item_count: int) -> None:
        self.spec = self._respec(item_count=item_count)

    def layout(self) -> Union[WindowLayout, GridWindowLayout]:
        if isinstance(self.spec, GridWindowSpec):
            return compute_grid_layout(self.spec)
        return compute_layout(self.spec)

    def items(self, items: Sequence[Any], key: Optional[Callable[[Any, int], Any]] = None) -> List[VisibleItem]:
        return visible_items(items, self.layout(), key)

    def close(self) -> None:
        self._settle.close()
        self.is_scrolling = False

    def _respec(self, **changes):
        # rebuild instead of model_copy so the validators run again
        return type(self.spec)(**{**self.spec.model_dump(), **changes})

    def _settled(self) -> None:
        self.is_scrolling = False
