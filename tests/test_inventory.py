import pytest

from storefront.common import database
from storefront.common.config import settings
from storefront.common.errors import InsufficientStock, InvalidRequest, NotFound, Unauthorized
from storefront.inventory.service import (
    InventoryLedger,
    add_product,
    delete_product,
    get_product,
    list_all_products,
    list_products,
    update_product,
)


async def stock_of(product_id):
    product = await database.fetch_product(product_id)
    return product["stock"]


class TestReserve:
    async def test_decrements_and_returns_price(self, make_product):
        product_id = await make_product(stock=5, price=10.0)
        async with database.unit_of_work() as session:
            price = await InventoryLedger(session).reserve(product_id, 3)
        assert price == 10.0
        assert await stock_of(product_id) == 2

    async def test_exact_stock_can_be_reserved(self, make_product):
        product_id = await make_product(stock=4)
        async with database.unit_of_work() as session:
            await InventoryLedger(session).reserve(product_id, 4)
        assert await stock_of(product_id) == 0

    async def test_insufficient_stock(self, make_product):
        product_id = await make_product(stock=2)
        with pytest.raises(InsufficientStock):
            async with database.unit_of_work() as session:
                await InventoryLedger(session).reserve(product_id, 5)
        assert await stock_of(product_id) == 2

    async def test_missing_product(self):
        with pytest.raises(NotFound):
            async with database.unit_of_work() as session:
                await InventoryLedger(session).reserve(424242, 1)

    async def test_inactive_product(self, make_product):
        product_id = await make_product(stock=10, is_active=False)
        with pytest.raises(NotFound):
            async with database.unit_of_work() as session:
                await InventoryLedger(session).reserve(product_id, 1)
        assert await stock_of(product_id) == 10


class TestRelease:
    async def test_increments(self, make_product):
        product_id = await make_product(stock=1)
        async with database.unit_of_work() as session:
            await InventoryLedger(session).release(product_id, 4)
        assert await stock_of(product_id) == 5

    async def test_missing_product_is_a_noop(self):
        async with database.unit_of_work() as session:
            ledger = InventoryLedger(session)
            await ledger.release(424242, 3)
        assert ledger.changes == {}

    async def test_restores_inactive_product(self, make_product):
        product_id = await make_product(stock=0, is_active=False)
        async with database.unit_of_work() as session:
            await InventoryLedger(session).release(product_id, 2)
        assert await stock_of(product_id) == 2

    async def test_balanced_movements_keep_stock_non_negative(self, make_product):
        product_id = await make_product(stock=3)
        for quantity in (1, 3, 2, 3):
            async with database.unit_of_work() as session:
                await InventoryLedger(session).reserve(product_id, quantity)
            assert await stock_of(product_id) >= 0
            async with database.unit_of_work() as session:
                await InventoryLedger(session).release(product_id, quantity)
        assert await stock_of(product_id) == 3


class TestPublish:
    async def test_publishes_final_stock_per_product(self, make_product, fake_redis):
        first = await make_product(stock=5)
        second = await make_product(name="Gadget", stock=8)
        async with database.unit_of_work() as session:
            ledger = InventoryLedger(session)
            await ledger.reserve(first, 1)
            await ledger.reserve(first, 2)
            await ledger.reserve(second, 3)
        await ledger.publish()

        channel = settings.REDIS_STOCK_CHANNEL
        assert fake_redis.published == [
            (channel, {"product_id": first, "stock": 2}),
            (channel, {"product_id": second, "stock": 5}),
        ]
        assert ledger.changes == {}

    async def test_redis_failure_is_not_raised(self, make_product, monkeypatch):
        from storefront.common import redis_client

        async def _broken():
            raise ConnectionError("redis down")

        monkeypatch.setattr(redis_client, "get_redis", _broken)
        product_id = await make_product(stock=5)
        async with database.unit_of_work() as session:
            ledger = InventoryLedger(session)
            await ledger.reserve(product_id, 1)
        await ledger.publish()
        assert await stock_of(product_id) == 4


class TestCatalogue:
    async def test_add_product(self, admin):
        product_id = await add_product(
            admin, {"name": "Lamp", "description": "Desk lamp", "price": 12.5, "stock": 7}
        )
        product = await get_product(product_id)
        assert product["name"] == "Lamp"
        assert product["stock"] == 7
        assert product["is_active"] is True
        assert product["image_url"] is None

    async def test_add_product_requires_admin(self, customer):
        data = {"name": "Lamp", "description": "Desk lamp", "price": 12.5, "stock": 7}
        with pytest.raises(Unauthorized):
            await add_product(customer, data)
        with pytest.raises(Unauthorized):
            await add_product(None, data)
        assert await list_products() == []

    @pytest.mark.parametrize(
        "data",
        [
            {"name": "Lamp", "description": "d", "price": -1, "stock": 1},
            {"name": "Lamp", "description": "d", "price": 1, "stock": -1},
            {"name": "Lamp", "description": "d", "price": 1, "stock": 1.5},
            {"name": "Lamp", "description": "d", "price": "cheap", "stock": 1},
            {"name": "", "description": "d", "price": 1, "stock": 1},
            {"name": "Lamp", "price": 1, "stock": 1},
            {"name": "Lamp", "description": "d", "price": 1, "stock": 1, "sku": "X"},
            {"name": "Lamp", "description": "d", "price": 1, "stock": 10 ** 30},
        ],
    )
    async def test_add_product_validation(self, admin, data):
        with pytest.raises(InvalidRequest):
            await add_product(admin, data)

    async def test_list_products_hides_inactive(self, admin, make_product):
        visible = await make_product(name="Visible")
        hidden = await make_product(name="Hidden", is_active=False)
        assert [p["id"] for p in await list_products()] == [visible]
        assert [p["id"] for p in await list_all_products(admin)] == [visible, hidden]

    async def test_list_all_products_requires_admin(self, customer):
        with pytest.raises(Unauthorized):
            await list_all_products(customer)

    async def test_get_product_includes_inactive(self, make_product):
        product_id = await make_product(is_active=False)
        assert (await get_product(product_id))["is_active"] is False

    async def test_get_missing_product(self):
        with pytest.raises(NotFound):
            await get_product(424242)

    async def test_update_product(self, admin, make_product, fake_redis):
        product_id = await make_product(price=10.0, stock=5)
        product = await update_product(admin, product_id, {"price": 12.0, "stock": 9, "image_url": "https://img/x.png"})
        assert product["price"] == 12.0
        assert product["stock"] == 9
        assert product["image_url"] == "https://img/x.png"
        assert fake_redis.published == [(settings.REDIS_STOCK_CHANNEL, {"product_id": product_id, "stock": 9})]

    async def test_update_without_stock_publishes_nothing(self, admin, make_product, fake_redis):
        product_id = await make_product()
        await update_product(admin, product_id, {"name": "Renamed"})
        assert (await get_product(product_id))["name"] == "Renamed"
        assert fake_redis.published == []

    async def test_update_requires_admin(self, customer, make_product):
        product_id = await make_product(price=10.0)
        with pytest.raises(Unauthorized):
            await update_product(customer, product_id, {"price": 0.0})
        assert (await get_product(product_id))["price"] == 10.0

    async def test_update_missing_product(self, admin):
        with pytest.raises(NotFound):
            await update_product(admin, 424242, {"price": 1.0})

    async def test_delete_deactivates(self, admin, make_product):
        product_id = await make_product()
        await delete_product(admin, product_id)
        product = await get_product(product_id)
        assert product["is_active"] is False
        assert await list_products() == []

    async def test_delete_requires_admin(self, customer, make_product):
        product_id = await make_product()
        with pytest.raises(Unauthorized):
            await delete_product(customer, product_id)
        assert (await get_product(product_id))["is_active"] is True

    async def test_delete_missing_product(self, admin):
        with pytest.raises(NotFound):
            await delete_product(admin, 424242)
