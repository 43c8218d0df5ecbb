"""
Planning Modules.

Orchestration over the planning kernel and engines.  Each module contains:
- Domain models (the nouns)
- ORM persistence
- Workflows (state machines)
- A service facade owning the transaction boundary

Modules:
- budget_request: Drug budget requests, their items and approval lifecycle
- reporting: SSCJ workbook and flat CSV rendering
"""
