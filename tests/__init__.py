"""
transcript_format test suite.

This package contains:
- unit/: Component tests against real SQLite files in temporary directories
- integration/: Transcript document and batch migration tests
"""
