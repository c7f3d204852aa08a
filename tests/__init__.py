"""
Test suite for cratesync.

Unit tests run without a CrateDB cluster: the connection pool and the
execution client are mocked.
"""
