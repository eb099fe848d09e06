"""Demonstration script for the production sequencing engine."""

from __future__ import annotations

import logging
from pprint import pprint

from . import FabricationOrderStatus, LineStatus, SequencingService


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    service = SequencingService()

    # Stammdaten
    line_a = service.register_line("Montagelinie A", 3)
    line_b = service.register_line("Montagelinie B", 2)
    service.register_line("Lackiererei", 2, status=LineStatus.PAUSED)

    service.create_fabrication_order("Sondermaschinen Müller GmbH", line_a.id, priority=6)
    service.create_fabrication_order(
        "Hydraulik Nord GmbH",
        line_b.id,
        priority=3,
        status=FabricationOrderStatus.IN_PROGRESS,
    )

    print("Linienauslastung vor der Planung:")
    for line in service.line_loads():
        print(f"  {line.name:<16} {line.current_load}/{line.capacity} ({line.status.value})")

    orders = [
        {
            "id": "SO-1001",
            "customer": "Agrartechnik Weber",
            "priority": 8,
            "estimated_hours": 6,
            "materials_available": True,
            "sap_id": "4500019876",
        },
        {
            "id": "SO-1002",
            "customer": "Verpackungstechnik Ost",
            "priority": 5,
            "estimated_hours": 4,
            "materials_available": True,
        },
        {
            "id": "SO-1003",
            "customer": "Fördertechnik Krause",
            "priority": 9,
            "estimated_hours": 10,
            "materials_available": False,
        },
        {
            "id": "SO-1004",
            "customer": "Metallbau Schröder",
            "priority": 5,
            "materials_available": True,
        },
        {
            "id": "SO-1005",
            "customer": "Stahlbau Richter",
            "priority": 2,
            "estimated_hours": 3,
            "materials_available": True,
        },
    ]

    result = service.sequence_orders(orders, auto_create=True)
    print("\nErgebnis der Sequenzierung:")
    pprint(result.as_dict(), sort_dicts=False)

    print("\nAngelegte Fertigungsaufträge:")
    for order in service.list_fabrication_orders():
        print(f"  {order.customer:<28} {order.status.value:<12} line={order.line_id}")


if __name__ == "__main__":
    main()
