import asyncio

import sqlalchemy as sa

from .common.database import init_db, AsyncSessionLocal
from .identity.model import User
from .inventory.model import Product


SAMPLE_PRODUCTS = [
    {"name": "Laptop Pro 14", "description": "14-inch laptop, 16GB RAM", "stock": 20, "price": 1499.00},
    {"name": "Wireless Mouse", "description": "Ergonomic 2.4GHz mouse", "stock": 150, "price": 24.99},
    {"name": "Mechanical Keyboard", "description": "Tenkeyless, brown switches", "stock": 80, "price": 89.99},
    {"name": "USB-C Hub", "description": "7-in-1 hub with HDMI", "stock": 120, "price": 39.99},
    {"name": "Noise-cancelling Headphones", "description": "Over-ear, 30h battery", "stock": 35, "price": 199.99},
    {"name": "4K Monitor 27\"", "description": "IPS panel, USB-C input", "stock": 25, "price": 329.99},
    {"name": "Portable SSD 1TB", "description": "USB 3.2, 1050MB/s", "stock": 60, "price": 99.99},
    {"name": "Webcam 1080p", "description": "Autofocus, stereo mic", "stock": 75, "price": 49.99},
]

SAMPLE_USERS = [
    {"email": "admin@example.com", "name": "Store Admin"},
    {"email": "customer@example.com", "name": "Sample Customer"},
]


async def seed_catalogue() -> int:
    """Insert sample products that are not present yet (matched by name)."""
    async with AsyncSessionLocal() as session:
        added = 0
        for p in SAMPLE_PRODUCTS:
            res = await session.execute(sa.select(Product.id).where(Product.name == p["name"]))
            if res.first():
                continue
            session.add(Product(is_active=True, **p))
            added += 1
        if added:
            await session.commit()
        return added


async def seed_users() -> int:
    async with AsyncSessionLocal() as session:
        added = 0
        for u in SAMPLE_USERS:
            res = await session.execute(sa.select(User.id).where(User.email == u["email"]))
            if res.first():
                continue
            session.add(User(**u))
            added += 1
        if added:
            await session.commit()
        return added


async def amain():
    await init_db()
    products = await seed_catalogue()
    users = await seed_users()
    print(f"Seed complete. Added {products} products and {users} users.")


if __name__ == "__main__":
    asyncio.run(amain())
