from decimal import Decimal

import pytest

from core.kv import _FakeRedis
from services.cart import Cart, CartError, CartItemNotFound, CartKey, CartLine, CartStore


def _line(item_id=1, price="15.00", name="Samosa", category="Snacks"):
    return CartLine(menu_item_id=item_id, name=name, price=Decimal(price), category=category)


@pytest.fixture
def store():
    return CartStore(_FakeRedis(), prefix="cart:", ttl_seconds=600)


class TestCart:
    """Line bookkeeping for a single cart"""

    def test_add_merges_same_item_and_price(self):
        cart = Cart()
        cart.add(_line())
        cart.add(_line(), quantity=2)
        assert len(cart.lines) == 1
        assert cart.lines[0].quantity == 3
        assert cart.count() == 3

    def test_same_item_at_two_prices_gives_two_lines(self):
        cart = Cart()
        cart.add(_line(2, "30.00", "Mango Shake", "Juices"))
        cart.add(_line(2, "50.00", "Mango Shake", "Juices"))
        assert [line.price for line in cart.lines] == [Decimal("30.00"), Decimal("50.00")]
        assert cart.total() == Decimal("80.00")

    def test_add_does_not_share_line_objects(self):
        line = _line()
        cart = Cart()
        cart.add(line)
        cart.add(line)
        assert line.quantity == 1
        assert cart.lines[0].quantity == 2

    def test_add_rejects_non_positive_quantity(self):
        with pytest.raises(CartError):
            Cart().add(_line(), quantity=0)

    def test_total_is_sum_of_lines(self):
        cart = Cart()
        cart.add(_line(1, "15.00"), quantity=2)
        cart.add(_line(2, "40.00"))
        assert cart.total() == Decimal("70.00")

    def test_empty_cart_total(self):
        assert Cart().total() == Decimal("0.00")
        assert Cart().is_empty()

    def test_remove_decrements_then_drops(self):
        cart = Cart()
        cart.add(_line(), quantity=2)
        cart.remove(1)
        assert cart.lines[0].quantity == 1
        cart.remove(1)
        assert cart.is_empty()

    def test_remove_missing_item(self):
        with pytest.raises(CartItemNotFound):
            Cart().remove(42)

    def test_remove_ambiguous_without_price(self):
        cart = Cart()
        cart.add(_line(2, "30.00"))
        cart.add(_line(2, "40.00"))
        with pytest.raises(CartError):
            cart.remove(2)
        cart.remove(2, Decimal("40"))
        assert [line.price for line in cart.lines] == [Decimal("30.00")]

    def test_clear_drops_every_unit(self):
        cart = Cart()
        cart.add(_line(), quantity=5)
        cart.add(_line(3, "20.00"))
        cart.clear(1)
        assert [line.menu_item_id for line in cart.lines] == [3]

    def test_json_keeps_line_order_and_prices(self):
        cart = Cart()
        cart.add(_line(1, "15.00"), quantity=2)
        cart.add(_line(2, "40.00", "Cold Coffee", None))
        restored = Cart.from_json(cart.to_json())
        assert [(l.menu_item_id, l.price, l.quantity, l.category) for l in restored.lines] == [
            (1, Decimal("15.00"), 2, "Snacks"),
            (2, Decimal("40.00"), 1, None),
        ]

    def test_unreadable_payload_gives_empty_cart(self):
        assert Cart.from_json("{not json").is_empty()
        assert Cart.from_json('[{"name": "missing id"}]').is_empty()
        assert Cart.from_json('[{"menu_item_id": 1, "name": "Tea", "price": "abc", "quantity": 1}]').is_empty()


class TestCartStore:
    """Carts are kept per student and canteen"""

    def test_load_missing_cart_is_empty(self, store):
        assert store.load(CartKey(1, 1)).is_empty()

    def test_save_and_load(self, store):
        key = CartKey(1, 7)
        cart = Cart()
        cart.add(_line(), quantity=2)
        store.save(key, cart)

        loaded = store.load(key)
        assert loaded.count() == 2
        assert store.client.get("cart:1:7") is not None

    def test_carts_are_isolated_per_canteen_and_student(self, store):
        cart = Cart()
        cart.add(_line())
        store.save(CartKey(1, 1), cart)
        assert store.load(CartKey(1, 2)).is_empty()
        assert store.load(CartKey(2, 1)).is_empty()

    def test_saving_empty_cart_deletes_key(self, store):
        key = CartKey(1, 1)
        cart = Cart()
        cart.add(_line())
        store.save(key, cart)
        cart.remove(1)
        store.save(key, cart)
        assert store.client.get(key.storage_key("cart:")) is None

    def test_delete(self, store):
        key = CartKey(1, 1)
        cart = Cart()
        cart.add(_line())
        store.save(key, cart)
        store.delete(key)
        assert store.load(key).is_empty()
