"""Test suite for the pytest-proctest package.

This package contains unit and integration tests validating document
scanning and parsing, variant expansion, placeholder resolution,
procedure execution and the pytest and command-line integrations.
"""
