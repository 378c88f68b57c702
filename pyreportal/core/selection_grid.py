import math
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 10
GRID_COLUMNS = 5


@dataclass
class GridSlot(Generic[T]):
    index: int
    item: Optional[T] = None
    selected: bool = False

    @property
    def is_placeholder(self) -> bool:
        return self.item is None


class SelectionGrid(Generic[T]):
    """
    Paginated single-select grid over an already fetched pool of items.

    Every page exposes exactly `page_size` slots: the page's items followed by
    empty placeholders, so the layout does not reflow between pages.
    """

    def __init__(self, items: Sequence[T] = (), page_size: int = DEFAULT_PAGE_SIZE,
                 key: Callable[[T], str] = lambda item: getattr(item, "key")):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.page_size = page_size
        self.key = key
        self._items: List[T] = list(items)
        self.current_page = 0
        self.selected_key: Optional[str] = None

    @property
    def items(self) -> List[T]:
        return list(self._items)

    def set_items(self, items: Sequence[T]):
        """Replaces the pool, returns to the first page and drops a stale selection."""
        self._items = list(items)
        self.current_page = 0
        if self.selected_key is not None and self.find(self.selected_key) is None:
            self.selected_key = None

    @property
    def item_count(self) -> int:
        return len(self._items)

    @property
    def total_pages(self) -> int:
        return math.ceil(len(self._items) / self.page_size)

    @property
    def rows(self) -> int:
        return math.ceil(self.page_size / GRID_COLUMNS)

    @property
    def page_items(self) -> List[T]:
        start = self.current_page * self.page_size
        return self._items[start:start + self.page_size]

    @property
    def placeholder_count(self) -> int:
        return self.page_size - len(self.page_items)

    def slots(self) -> List[GridSlot[T]]:
        items = self.page_items
        result = [GridSlot(index=i, item=item, selected=self.key(item) == self.selected_key)
                  for i, item in enumerate(items)]
        result.extend(GridSlot(index=i) for i in range(len(items), self.page_size))
        return result

    # Navigation

    @property
    def show_controls(self) -> bool:
        return self.total_pages > 1

    @property
    def can_go_prev(self) -> bool:
        return self.current_page > 0

    @property
    def can_go_next(self) -> bool:
        return self.current_page < self.total_pages - 1

    def next_page(self) -> bool:
        if not self.can_go_next:
            return False
        self.current_page += 1
        return True

    def prev_page(self) -> bool:
        if not self.can_go_prev:
            return False
        self.current_page -= 1
        return True

    def set_page(self, page: int):
        last = max(self.total_pages - 1, 0)
        self.current_page = max(0, min(page, last))

    # Selection

    def find(self, key: str) -> Optional[T]:
        return next((item for item in self._items if self.key(item) == key), None)

    def select(self, key: str) -> T:
        item = self.find(key)
        if item is None:
            raise KeyError(key)
        self.selected_key = key
        return item

    def clear_selection(self):
        self.selected_key = None

    @property
    def selected(self) -> Optional[T]:
        if self.selected_key is None:
            return None
        return self.find(self.selected_key)

    def is_selected(self, item: T) -> bool:
        return self.selected_key is not None and self.key(item) == self.selected_key
