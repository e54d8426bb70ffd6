"""
Fleet Kernel - waybill fuel accounting and document lifecycle.

A small transactional core for vehicle trip documents with:
- Season-aware fuel norm calculation (BOILER / SEGMENTS / MIXED)
- Fuel balance and odometer validation
- A fixed status state machine (DRAFT -> SUBMITTED -> POSTED, or CANCELLED)
- Atomic posting: stock depletion, blank consumption and audit in one unit of work
"""

__version__ = "0.1.0"
