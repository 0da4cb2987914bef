"""sysmon Test Suite.

This package contains unit tests and test fixtures for the sysmon host
health collection engine.

Test Organization:
    tests/
        unit/
            sysmon/
                utils/       - Platform detection, normalization, source access
                core/        - Models, capabilities, fallback chains, assembler, config
                collectors/  - Parsers and per-domain collectors
                sinks/       - JSON, history log and MQTT sinks
                monitors/    - Poll loop and CPU history
                api/         - REST API endpoints
        conftest.py          - Pytest configuration and global fixtures

Running Tests:
    # Run all tests
    pytest

    # Run with coverage
    pytest --cov=sysmon --cov-report=html

    # Run specific test file
    pytest tests/unit/sysmon/core/test_assembler.py

    # Run tests matching pattern
    pytest -k fallback

    # Run with verbose output
    pytest -v
"""
