"""Test suite for the testkit package.

This package contains unit and integration tests validating document
parsing, placeholder resolution, request dispatch, assertion evaluation,
execution semantics, the command-line runner and the pytest plugin.
"""
