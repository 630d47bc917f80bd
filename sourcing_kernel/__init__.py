"""
Sourcing Kernel

Order lifecycle and supplier matching engine with:
- Trust scoring of vendors and suppliers
- Distance/trust/catalog based supplier matching
- Order state machine with atomic stock reservation
- Bilateral contract signing
- Payment initiation, gateway callbacks and refunds
- Durable notifications with real-time fan-out
"""

__version__ = "0.1.0"
