"""Pure domain layer: values, FEFO planning, stock status rules, DTOs, clock.

Nothing in this package performs I/O (SystemClock aside) or imports
SQLAlchemy.
"""
