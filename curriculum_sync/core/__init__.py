"""Core Layer — pure domain logic, no IO, no async, no HTTP.

Invariants:
    - No module in core/ imports from services/, infrastructure/, or schemas/
    - Functions are deterministic given their inputs (temp id generation aside)

Design Decisions:
    - Functional core separated from imperative shell: normalize() and
      plan_phases() are pure, the executor in services/ does the IO
"""
