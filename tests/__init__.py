# ecies_study Test Suite
"""
Test suite including:
- Unit tests for the primitives and the envelope
- Security tests (tampering, invalid points, signature substitution)
- Integration tests (messenger, audit trail, configuration)

Run with: pytest
Coverage: coverage run -m pytest && coverage report
"""
