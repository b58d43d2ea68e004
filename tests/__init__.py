"""
Registration Assistant Tests

Unit tests live in tests/unit and need no running services: the database,
Redis and the Claude API are replaced with mocks.

Running Tests:
    # Install with test extras
    pip install -e ".[test]"

    # Run all tests
    pytest

    # Run one module
    pytest tests/unit/test_registration_engine.py -v

Test Coverage:
    - Schedule vocabulary, states and context serialization
    - Extraction parsing, prompt building and reconciliation
    - Flow transitions and explicit events
    - Availability filtering, ranking and alternatives
    - Inventory mapping and caching
    - Conversation persistence
    - Engine turns, failures and the HTTP API
"""
