"""
Unit Tests for Game Annotator

This package contains unit tests for the protocol client and the replay
driver. Most tests run against a scripted fake engine (fake_engine.py);
tests that need a real Stockfish skip when it is not installed.

Running Tests:
    # Run all tests
    pytest tests/

    # Run specific test file
    pytest tests/test_correlator.py

    # Run with coverage
    pytest tests/ --cov=game_annotator --cov-report=html

Dependencies:
    - pytest: Test framework
    - pytest-cov: Coverage reporting
"""
