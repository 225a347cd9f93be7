"""Checkout, order history and rider endpoints."""

import mongomock
import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure


def _add(client, user_id, product_id, quantity):
    response = client.post(
        "/cart/add", json={"userId": user_id, "productId": product_id, "quantity": quantity}
    )
    assert response.status_code == 201


def _checkout(client, user_id, location="X", phone="555"):
    return client.post(
        "/orders/checkout",
        json={"userId": user_id, "location": location, "phoneNumber": phone},
    )


@pytest.fixture()
def placed_order(client, make_user, make_product):
    user_id = make_user()
    product_id = make_product(name="Sneaker", price=10)
    _add(client, user_id, product_id, 2)
    order = _checkout(client, user_id).json()["order"]
    return user_id, product_id, order


class TestCheckout:
    def test_totals_cart_and_clears_it(self, client, db, make_user, make_product):
        user_id = make_user()
        product_id = make_product(price=10)
        _add(client, user_id, product_id, 2)
        _add(client, user_id, product_id, 3)

        response = _checkout(client, user_id, location="X", phone="555")

        assert response.status_code == 201
        order = response.json()["order"]
        assert order["totalAmount"] == 50
        assert order["status"] == "pending"
        assert order["location"] == "X"
        assert order["phoneNumber"] == "555"
        assert order["items"] == [{"productId": product_id, "quantity": 5}]
        assert client.get(f"/cart/{user_id}").json() == []

    def test_uses_price_at_checkout_time(self, client, db, make_user, make_product):
        user_id = make_user()
        shoe = make_product(name="Sneaker", price=10)
        hat = make_product(name="Hat", price=4)
        _add(client, user_id, shoe, 1)
        _add(client, user_id, hat, 2)
        db["product"].update_one({"_id": ObjectId(shoe)}, {"$set": {"price": 12.5}})

        order = _checkout(client, user_id).json()["order"]

        assert order["totalAmount"] == 12.5 + 8

    def test_empty_cart(self, client, db, make_user):
        response = _checkout(client, make_user())

        assert response.status_code == 400
        assert response.json()["detail"] == "Cart is empty"
        assert db["order"].count_documents({}) == 0

    def test_dangling_product_blocks_checkout(self, client, db, make_user):
        user_id = make_user()
        _add(client, user_id, str(ObjectId()), 1)

        response = _checkout(client, user_id)

        assert response.status_code == 400
        assert db["order"].count_documents({}) == 0
        assert db["cart"].count_documents({}) == 1

    def test_failed_cart_clear_leaves_order_and_reports_error(
        self, client, db, make_user, make_product, monkeypatch
    ):
        user_id = make_user()
        _add(client, user_id, make_product(), 1)

        def broken_delete_many(self, *args, **kwargs):
            raise OperationFailure("node is not primary")

        monkeypatch.setattr(mongomock.Collection, "delete_many", broken_delete_many)

        response = _checkout(client, user_id)

        assert response.status_code == 500
        assert "node is not primary" in response.json()["error"]
        assert db["order"].count_documents({}) == 1
        assert db["cart"].count_documents({}) == 1


class TestUserOrders:
    def test_lists_orders_with_products(self, client, placed_order):
        user_id, product_id, order = placed_order

        response = client.get(f"/orders/user/{user_id}")

        assert response.status_code == 200
        orders = response.json()
        assert [o["id"] for o in orders] == [order["id"]]
        line = orders[0]["items"][0]
        assert line["productId"] == product_id
        assert line["product"]["name"] == "Sneaker"
        assert line["product"]["description"] == "Sneaker description"

    def test_other_users_orders_are_excluded(self, client, placed_order, make_user):
        other = make_user(phone="0799")
        assert client.get(f"/orders/user/{other}").json() == []


class TestRiderOrders:
    def test_lists_all_orders_with_contact_and_products(self, client, placed_order, make_user):
        user_id, _, order = placed_order
        client.put(
            f"/user/update/{user_id}",
            json={"fullName": "Ada", "city": "Lagos", "location": "Marina"},
        )

        orders = client.get("/rider/orders").json()

        assert len(orders) == 1
        rider_view = orders[0]
        assert rider_view["user"] == {
            "id": user_id,
            "fullName": "Ada",
            "phoneNumber": "0700000001",
            "city": "Lagos",
            "location": "Marina",
        }
        product = rider_view["items"][0]["product"]
        assert product["name"] == "Sneaker"
        assert product["price"] == 10
        assert "description" not in product

    def test_status_update(self, client, placed_order):
        _, _, order = placed_order

        response = client.put(f"/rider/orders/{order['id']}/status", json={"status": "delivered"})

        assert response.status_code == 200
        assert response.json()["order"]["status"] == "delivered"

    def test_any_transition_is_allowed(self, client, placed_order):
        _, _, order = placed_order
        url = f"/rider/orders/{order['id']}/status"

        client.put(url, json={"status": "delivered"})
        response = client.put(url, json={"status": "pending"})

        assert response.json()["order"]["status"] == "pending"

    @pytest.mark.parametrize("status", ["shipped", "DELIVERED", ""])
    def test_invalid_status_leaves_order_unchanged(self, client, db, placed_order, status):
        _, _, order = placed_order

        response = client.put(f"/rider/orders/{order['id']}/status", json={"status": status})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid status value"
        assert db["order"].find_one({"_id": ObjectId(order["id"])})["status"] == "pending"

    def test_unknown_order(self, client):
        response = client.put(f"/rider/orders/{ObjectId()}/status", json={"status": "canceled"})
        assert response.status_code == 404

    def test_null_profile_fields_do_not_break_listing(self, client, db, placed_order, make_user):
        user_id, _, _ = placed_order
        client.put(f"/user/update/{user_id}", json={"city": None})
        other = make_user(phone="0799")
        db["user"].update_one({"_id": ObjectId(other)}, {"$set": {"location": None}})
        db["order"].insert_one(
            {
                "user_id": ObjectId(other),
                "items": [],
                "location": "Y",
                "phone_number": "0799",
                "total_amount": 0,
                "status": "pending",
            }
        )

        response = client.get("/rider/orders")

        assert response.status_code == 200
        users = {o["user"]["id"]: o["user"] for o in response.json()}
        assert users[user_id]["city"] == ""
        assert users[other]["location"] is None

    def test_status_update_returns_plain_lines(self, client, placed_order):
        _, product_id, order = placed_order

        response = client.put(f"/rider/orders/{order['id']}/status", json={"status": "canceled"})

        assert response.json()["order"]["items"] == [{"productId": product_id, "quantity": 2}]
