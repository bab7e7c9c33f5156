"""
Demo Menu Seeding

Fills an empty products table with the demo menu so a fresh install has
something to order. Runs at startup when SEED_DEMO_MENU is enabled, or
by hand:

    python -m resto.seed [--reset]
"""

import argparse
import asyncio
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from resto.core.config import setup_logging
from resto.database import async_session_maker, engine, init_db
from resto.models import Product

logger = logging.getLogger(__name__)

DEMO_MENU = [
    # (category, name, description, price)
    ("Starters", "Spring Rolls", "Crispy vegetable rolls with sweet chili dip", 6.50),
    ("Starters", "Pork Dumplings", "Six steamed dumplings with black vinegar", 8.00),
    ("Starters", "Hot and Sour Soup", "Tofu, bamboo shoots and egg ribbons", 5.50),
    ("Mains", "Kung Pao Chicken", "Wok-fried chicken, peanuts and dried chilies", 15.90),
    ("Mains", "Mapo Tofu", "Silken tofu in spicy Sichuan bean sauce", 13.50),
    ("Mains", "Beef Chow Fun", "Flat rice noodles with beef and bean sprouts", 16.50),
    ("Mains", "Sweet and Sour Pork", "Battered pork with pineapple and peppers", 15.00),
    ("Sides", "Egg Fried Rice", "Wok-tossed rice with egg and scallions", 4.50),
    ("Sides", "Garlic Bok Choy", "Stir-fried bok choy with garlic", 6.00),
    ("Desserts", "Mango Pudding", "Chilled mango pudding with cream", 5.90),
    ("Desserts", "Sesame Balls", "Fried glutinous rice with red bean filling", 5.00),
    ("Drinks", "Jasmine Tea", "Pot of jasmine green tea", 3.50),
    ("Drinks", "Lychee Soda", "Sparkling lychee lemonade", 4.00),
    ("Drinks", "Tsingtao Beer", "330ml bottle", 5.50),
]


async def seed_demo_menu(session: AsyncSession, reset: bool = False) -> int:
    """
    Insert the demo menu if the products table is empty.

    Returns:
        Number of products inserted (0 when the menu already existed)
    """
    if reset:
        await session.execute(delete(Product))

    existing = (await session.execute(select(func.count(Product.id)))).scalar() or 0
    if existing:
        logger.debug(f"Menu already has {existing} products, skipping seed")
        return 0

    for category, name, description, price in DEMO_MENU:
        session.add(Product(
            name=name,
            description=description,
            price=price,
            category=category,
            available=True,
        ))
    await session.commit()

    logger.info(f"Seeded demo menu with {len(DEMO_MENU)} products")
    return len(DEMO_MENU)


async def _main(reset: bool) -> None:
    await init_db()
    async with async_session_maker() as session:
        await seed_demo_menu(session, reset=reset)
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the demo menu")
    parser.add_argument("--reset", action="store_true", help="Delete all products first")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(_main(args.reset))
