"""
modulebus Test Suite
====================

Test Organization
-----------------
- tests/conftest.py : shared fixtures (error reporter double, config, engine, system)
- tests/unit/       : fast, in-process tests; no external services

Testing Philosophy
------------------
- One test class per behaviour area, one docstring per non-obvious test
- Async code is exercised under pytest-asyncio on a fresh loop per test
- Follow AAA pattern: Arrange, Act, Assert
"""
