#!/usr/bin/env python3
"""
Script para crear las tablas y cargar datos de prueba.

Crea un venue, un evento aprobado, dos tipos de ticket y algunos usuarios,
e imprime sus IDs para armar requests de registro.
"""
import argparse
import asyncio
import logging
from decimal import Decimal

from shared.database import connection
from shared.database.models import Event, TicketType, User, Venue

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("seed_data")


async def seed(capacity: int, users: int):
    await connection.init_db()
    await connection.create_tables()

    async with connection.async_session_maker() as db:
        venue = Venue(name="Main Hall", location="Downtown", capacity=capacity)
        event = Event(title="Demo Event", status="approved", venue=venue)
        general = TicketType(event=event, name="General", price=Decimal("50.00"), is_active=True)
        student = TicketType(event=event, name="Student", price=Decimal("20.50"), is_active=True)
        people = [
            User(email=f"user{i}@example.com", username=f"user{i}", first_name="Demo", last_name=f"User {i}")
            for i in range(1, users + 1)
        ]
        db.add_all([venue, event, general, student, *people])
        await db.commit()

        logger.info(f"Venue: {venue.id} (capacity {capacity})")
        logger.info(f"Event: {event.id}")
        logger.info(f"Ticket types: General={general.id} Student={student.id}")
        for person in people:
            logger.info(f"User {person.email}: {person.id}")

    await connection.close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Cargar datos de prueba")
    parser.add_argument("--capacity", type=int, default=100, help="Capacidad del venue")
    parser.add_argument("--users", type=int, default=3, help="Cantidad de usuarios a crear")
    args = parser.parse_args()

    asyncio.run(seed(args.capacity, args.users))
