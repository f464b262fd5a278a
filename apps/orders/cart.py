"""
Session-backed shopping cart.

Lines are stored as plain strings/ints under one session key, so any session
backend (db, cache, signed cookies) can persist them. Every mutation re-assigns
the key, which is what marks a Django session as modified and gets it saved
at the end of the request.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterator, List, Optional

from apps.catalog.services import DiscountResolver
from apps.pricing import engine
from apps.utils.utils import to_money

SESSION_KEY = "cart"


@dataclass
class CartLine:
    product_id: str
    name: str
    unit_price: Decimal
    original_price: Decimal
    discount_pct: Optional[Decimal] = None
    qty: int = 1

    @classmethod
    def from_product(cls, product, qty: int = 1, now=None) -> "CartLine":
        unit_price, pct = DiscountResolver.price_for(product, now=now)
        return cls(
            product_id=str(product.pk),
            name=product.name,
            unit_price=unit_price,
            original_price=to_money(product.price),
            discount_pct=pct,
            qty=qty,
        )

    @classmethod
    def from_session(cls, data: dict) -> "CartLine":
        pct = data.get("discount_pct")
        return cls(
            product_id=data["product_id"],
            name=data.get("name", ""),
            unit_price=Decimal(data["unit_price"]),
            original_price=Decimal(data.get("original_price") or data["unit_price"]),
            discount_pct=Decimal(pct) if pct is not None else None,
            qty=int(data["qty"]),
        )

    def to_session(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "original_price": str(self.original_price),
            "discount_pct": str(self.discount_pct) if self.discount_pct is not None else None,
            "qty": self.qty,
        }

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.qty)


class CartStore:

    def __init__(self, session):
        self.session = session
        self._lines = {
            data["product_id"]: CartLine.from_session(data)
            for data in session.get(SESSION_KEY, [])
        }

    def add(self, line: CartLine, qty: int) -> Optional[CartLine]:
        """
        Merge by product id. A resulting quantity <= 0 removes the line;
        a new line with qty <= 0 is ignored.
        """
        key = str(line.product_id)
        existing = self._lines.get(key)

        if existing is None:
            if qty <= 0:
                return None
            line.product_id = key
            line.qty = qty
            self._lines[key] = line
        else:
            new_qty = existing.qty + qty
            if new_qty <= 0:
                del self._lines[key]
                self._save()
                return None
            # latest resolved price wins
            line.product_id = key
            line.qty = new_qty
            self._lines[key] = line

        self._save()
        return self._lines[key]

    def remove(self, product_id):
        if self._lines.pop(str(product_id), None) is not None:
            self._save()

    def clear(self):
        self._lines = {}
        self._save()

    def total(self) -> int:
        """Item count (sum of quantities)."""
        return sum(line.qty for line in self._lines.values())

    def items_total(self) -> Decimal:
        return engine.items_total(self._lines.values())

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def __iter__(self) -> Iterator[CartLine]:
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self._lines)

    def _save(self):
        self.session[SESSION_KEY] = [line.to_session() for line in self._lines.values()]
