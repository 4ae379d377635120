"""Size planning: randomized per-run row counts and the control ids derived from them."""

from dataclasses import dataclass, fields

import numpy as np


class BoundsError(ValueError):
    """Size bounds that would make the generated dataset inconsistent."""


@dataclass(frozen=True)
class SizeBounds:
    """Inclusive (min, max) bounds for every entity count."""

    categories: tuple[int, int] = (45, 55)
    customers: tuple[int, int] = (4_800, 5_200)
    products: tuple[int, int] = (9_500, 10_500)
    orders: tuple[int, int] = (98_000, 102_000)
    # Fixed by default: the dead-stock tail is a constant, not a random size
    dead_products: tuple[int, int] = (100, 100)

    def validate(self) -> None:
        """Fail fast before anything is generated."""
        for f in fields(self):
            lo, hi = getattr(self, f.name)
            floor = 0 if f.name == "dead_products" else 1
            if lo < floor:
                raise BoundsError(f"{f.name} minimum must be >= {floor}, got {lo}")
            if lo > hi:
                raise BoundsError(f"{f.name} minimum {lo} exceeds maximum {hi}")

        if self.customers[0] < 2:
            raise BoundsError(
                "customers minimum must be >= 2 (the last customer never orders)"
            )

        # Worst case: smallest catalogue with the largest dead tail
        sellable = self.products[0] - self.dead_products[1] - 1
        if sellable < 1:
            raise BoundsError(
                f"dead_products maximum {self.dead_products[1]} leaves no sellable "
                f"products out of a minimum of {self.products[0]}"
            )


@dataclass(frozen=True)
class Plan:
    """Row counts resolved once per run and handed to every stage."""

    categories: int
    customers: int
    products: int
    orders: int
    dead_products: int

    @property
    def empty_category_id(self) -> int:
        return self.categories + 1

    @property
    def orderless_customer_id(self) -> int:
        return self.customers

    @property
    def sellable_products(self) -> int:
        """Upper bound of the product id range order lines may reference."""
        return self.products - self.dead_products - 1

    def describe(self) -> list[str]:
        return [
            f"{self.categories:,} categories (+1 empty, id {self.empty_category_id})",
            f"{self.customers:,} customers (id {self.orderless_customer_id} never orders)",
            f"{self.products:,} products (last {self.dead_products} never sold)",
            f"{self.orders:,} orders",
        ]


def plan_sizes(bounds: SizeBounds, rng: np.random.Generator) -> Plan:
    """Draw every count uniformly from its inclusive bounds."""
    bounds.validate()
    drawn: dict[str, int] = {}
    for f in fields(bounds):
        lo, hi = getattr(bounds, f.name)
        drawn[f.name] = int(rng.integers(lo, hi + 1))
    return Plan(**drawn)
