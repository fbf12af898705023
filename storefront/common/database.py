from contextlib import asynccontextmanager
from typing import Optional, Dict, Any, List, Tuple, AsyncIterator

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from .config import settings
from .db import Base
from ..identity.model import Role, User, UserRole
from ..inventory.model import Product
from ..orders.model import Order, OrderItem


# Async SQLAlchemy engine and session factory
engine = create_async_engine(settings.DB_URL, future=True, echo=settings.DB_ECHO)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@asynccontextmanager
async def unit_of_work() -> AsyncIterator[AsyncSession]:
    """Session with an open transaction; commits on exit, rolls back on error."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            yield session


@asynccontextmanager
async def _scope(session: Optional[AsyncSession]) -> AsyncIterator[AsyncSession]:
    if session is not None:
        yield session
        return
    async with AsyncSessionLocal() as own:
        yield own


# Products

def _product_dict(prod: Product) -> Dict[str, Any]:
    return {
        "id": prod.id,
        "name": prod.name,
        "description": prod.description,
        "price": prod.price,
        "image_url": prod.image_url,
        "stock": prod.stock,
        "is_active": prod.is_active,
    }


async def fetch_product(product_id: int, session: Optional[AsyncSession] = None) -> Optional[Dict[str, Any]]:
    async with _scope(session) as s:
        prod = await s.get(Product, product_id, populate_existing=True)
        if not prod:
            return None
        return _product_dict(prod)


async def fetch_products(active_only: bool = True) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Product).order_by(Product.id)
        if active_only:
            stmt = stmt.where(Product.is_active.is_(True))
        res = await session.execute(stmt)
        return [_product_dict(prod) for prod in res.scalars().all()]


async def insert_product(fields: Dict[str, Any]) -> int:
    async with AsyncSessionLocal() as session:
        prod = Product(**fields)
        session.add(prod)
        await session.flush()  # assign PK
        product_id = int(prod.id)
        await session.commit()
        return product_id


async def patch_product(product_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Apply a partial update. Returns the updated product, or None if absent."""
    async with AsyncSessionLocal() as session:
        async with session.begin():
            prod = await session.get(Product, product_id)
            if not prod:
                return None
            for key, value in fields.items():
                setattr(prod, key, value)
        return _product_dict(prod)


async def try_reserve_stock(session: AsyncSession, product_id: int, quantity: int) -> Optional[Tuple[float, int]]:
    """Atomically decrement stock of an active product if enough is available.

    Returns ``(unit_price, new_stock)`` on success, None when nothing was updated.
    """
    stmt = (
        sa.update(Product)
        .where(
            Product.id == product_id,
            Product.is_active.is_(True),
            Product.stock >= quantity,
        )
        .values(stock=Product.stock - quantity)
        .returning(Product.price, Product.stock)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    row = res.first()
    if row is None:
        return None
    return float(row[0]), int(row[1])


async def release_stock(session: AsyncSession, product_id: int, quantity: int) -> Optional[int]:
    """Atomically add stock back. Returns the new stock, None if the product is gone."""
    stmt = (
        sa.update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
        .returning(Product.stock)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    row = res.first()
    return int(row[0]) if row else None


# Orders

def _order_dict(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "items": [
            {"product_id": item.product_id, "quantity": item.quantity, "price": item.price}
            for item in order.items
        ],
        "total": order.total,
        "status": order.status,
        "customer_email": order.customer_email,
        "shipping_address": order.shipping_address,
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }


async def insert_order(
    session: AsyncSession,
    user_id: int,
    items: List[Dict[str, Any]],
    total: float,
    customer_email: str,
    shipping_address: str,
    status: str = "pending",
) -> int:
    order = Order(
        user_id=user_id,
        total=total,
        status=status,
        customer_email=customer_email,
        shipping_address=shipping_address,
        items=[
            OrderItem(position=pos, product_id=item["product_id"], quantity=item["quantity"], price=item["price"])
            for pos, item in enumerate(items)
        ],
    )
    session.add(order)
    await session.flush()  # assign PK
    return int(order.id)


async def fetch_order(order_id: int, session: Optional[AsyncSession] = None) -> Optional[Dict[str, Any]]:
    async with _scope(session) as s:
        order = await s.get(Order, order_id, populate_existing=True)
        if not order:
            return None
        return _order_dict(order)


async def fetch_orders(user_id: Optional[int] = None) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Order).order_by(Order.id)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        res = await session.execute(stmt)
        return [_order_dict(order) for order in res.scalars().all()]


async def update_order_status(order_id: int, status: str, expected: Optional[str] = None,
                              session: Optional[AsyncSession] = None) -> bool:
    """Set the order status; with ``expected`` only when the current status matches."""
    stmt = sa.update(Order).where(Order.id == order_id)
    if expected is not None:
        stmt = stmt.where(Order.status == expected)
    stmt = stmt.values(status=status).execution_options(synchronize_session=False)
    if session is not None:
        res = await session.execute(stmt)
        return (res.rowcount or 0) > 0
    async with AsyncSessionLocal() as own:
        res = await own.execute(stmt)
        await own.commit()
        return (res.rowcount or 0) > 0


# Users and roles

async def fetch_user(user_id: int) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        user = await session.get(User, user_id)
        if not user:
            return None
        return {"id": user.id, "email": user.email, "name": user.name}


async def insert_user(email: Optional[str] = None, name: Optional[str] = None) -> int:
    async with AsyncSessionLocal() as session:
        user = User(email=email, name=name)
        session.add(user)
        await session.flush()  # assign PK
        user_id = int(user.id)
        await session.commit()
        return user_id


async def fetch_role(user_id: int, session: Optional[AsyncSession] = None) -> Optional[str]:
    async with _scope(session) as s:
        stmt = sa.select(UserRole.role).where(UserRole.user_id == user_id).limit(1)
        res = await s.execute(stmt)
        row = res.first()
        return row[0] if row else None


async def upsert_role(user_id: int, role: str, session: Optional[AsyncSession] = None) -> None:
    async with _scope(session) as s:
        res = await s.execute(sa.select(UserRole).where(UserRole.user_id == user_id))
        existing = res.scalar_one_or_none()
        if existing:
            existing.role = role
        else:
            s.add(UserRole(user_id=user_id, role=role))
        await s.flush()
        if session is None:
            await s.commit()


async def grant_first_admin(session: AsyncSession, user_id: int) -> bool:
    """Make ``user_id`` admin only if no admin exists. Returns False if one does.

    Each statement re-checks for an admin while holding the write lock, so two
    concurrent bootstraps cannot both succeed.
    """
    admins = UserRole.__table__.alias("admins")
    no_admin = ~sa.exists().where(admins.c.role == Role.ADMIN.value)

    promote = (
        sa.update(UserRole)
        .where(UserRole.user_id == user_id, no_admin)
        .values(role=Role.ADMIN.value)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(promote)
    if (res.rowcount or 0) > 0:
        return True

    insert = sa.insert(UserRole.__table__).from_select(
        ["user_id", "role"],
        sa.select(sa.literal(user_id), sa.literal(Role.ADMIN.value)).where(no_admin),
    )
    res = await session.execute(insert)
    return (res.rowcount or 0) > 0
