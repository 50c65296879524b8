"""FlashDash - delivery coordination backend.

Customers post delivery requests, riders discover and claim them, and
both sides follow a shared lifecycle (pending, accepted, picked up,
delivered) through to completion. A delivery can be claimed by exactly
one rider, and only that rider may advance it.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
