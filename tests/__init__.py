"""flowcore test suite

Test organization:
- unit/: one directory per package area
  - core/: config loading, CLI, logging setup, records and sources
  - storage/: in-memory and sqlite backends, record codec
  - memory/: MemoryStore and its persisted records
  - learning/: behavior analyzer and profile learner
  - context/: tiered cache, invalidation wiring, sections, assembler

Shared fixtures (fixed clock, stores, session factory) live in conftest.py.

Running tests:
    # All tests
    pytest

    # One area
    pytest tests/unit/context/

    # With coverage
    pytest --cov=flowcore --cov-report=term-missing
"""
