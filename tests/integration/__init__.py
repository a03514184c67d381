"""
Integration tests for the Digest Auth service.

These tests run against a real Redis server. They are separate from unit
tests which use mocks and in-process testing.
"""
