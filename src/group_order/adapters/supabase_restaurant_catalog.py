"""Supabase-backed restaurant catalog."""

from dataclasses import dataclass
from decimal import Decimal

from supabase import Client

from group_order.domain.restaurants import (
    MenuCategory,
    MenuItem,
    MenuVariant,
    RestaurantRef,
)
from group_order.services.restaurants import RestaurantCatalog

_UNCATEGORIZED = "Other"


@dataclass
class SupabaseRestaurantCatalog(RestaurantCatalog):
    """Reads restaurants and their menu items into immutable snapshots."""

    client: Client

    def get_restaurant(self, restaurant_id: str) -> RestaurantRef | None:
        """Return a restaurant snapshot with its categorized menu."""
        response = (
            self.client.table("restaurants")
            .select("id, name, address")
            .eq("id", restaurant_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        items_response = (
            self.client.table("menu_items")
            .select("category, name, price, variants")
            .eq("restaurant_id", restaurant_id)
            .order("sort_order")
            .execute()
        )
        return RestaurantRef(
            id=str(row["id"]),
            name=row["name"],
            address=row.get("address"),
            categories=_group_menu(items_response.data or []),
        )


def _group_menu(rows: list[dict]) -> tuple[MenuCategory, ...]:
    grouped: dict[str, list[MenuItem]] = {}
    for row in rows:
        category = row.get("category") or _UNCATEGORIZED
        grouped.setdefault(category, []).append(
            MenuItem(name=row["name"], variants=_variants(row))
        )
    return tuple(
        MenuCategory(name=name, items=tuple(items)) for name, items in grouped.items()
    )


def _variants(row: dict) -> tuple[MenuVariant, ...]:
    variants = row.get("variants") or []
    if variants:
        return tuple(
            MenuVariant(label=str(variant.get("label", "")), price=_price(variant))
            for variant in variants
        )
    if row.get("price") is None:
        return ()
    return (MenuVariant(label="", price=_price(row)),)


def _price(payload: dict) -> Decimal:
    return Decimal(str(payload["price"]))
