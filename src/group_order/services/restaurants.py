"""Restaurant catalog port used when creating sessions."""

from typing import Protocol

from group_order.domain.restaurants import RestaurantRef


class RestaurantCatalog(Protocol):
    """Read-only access to restaurant menus."""

    def get_restaurant(self, restaurant_id: str) -> RestaurantRef | None:
        """Return a snapshot of a restaurant and its menu, if present."""
