"""
Radar Automated Test Environment - Test Suite Package.

Contains Pytest-based test suites organized by test type:
- functional/: Functional verification tests.
- durability/: Long-running durability tests.
- regression/: Full regression test suites.
- integration/: New feature integration tests.
"""

