"""
Test suite for the table_dataset package.

Organized by concern:

- data/       – TableDataset construction, sampling, mini-batching, animations
- top level   – lazy sequences, config, logging, exceptions
- conftest.py – shared fixtures and the deterministic seed

Pytest discovers tests by file name (test_*.py); nothing here is meant to be
imported as a library.
"""

__all__: list[str] = []
