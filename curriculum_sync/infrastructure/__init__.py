"""Infrastructure Layer — adapters for the persistence service, form state and logging.

Invariants:
    - Adapters implement core/boundary_protocols.py structurally (no inheritance)
    - All remote calls wrapped with retry/timeout/error mapping

Design Decisions:
    - Resilient wrapper over a raw httpx client: retry policy lives in one place
"""
