"""Read-only restaurant snapshots attached to sessions."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class MenuVariant:
    """A priced variant of a menu item (size, flavour, ...)."""

    label: str
    price: Decimal


@dataclass(frozen=True)
class MenuItem:
    """Menu entry with one or more priced variants."""

    name: str
    variants: tuple[MenuVariant, ...]


@dataclass(frozen=True)
class MenuCategory:
    """Named group of menu items."""

    name: str
    items: tuple[MenuItem, ...]


@dataclass(frozen=True)
class RestaurantRef:
    """Immutable snapshot of a restaurant taken when a session is created."""

    id: str
    name: str
    address: str | None
    categories: tuple[MenuCategory, ...] = ()
