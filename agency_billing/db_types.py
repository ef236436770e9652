"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import Numeric, Uuid

# Native UUID on PostgreSQL, CHAR(32) elsewhere
UUIDType = Uuid

# Money columns: 18 digits, 2 decimal places (up to 9,999,999,999,999,999.99)
MoneyType = Numeric(18, 2, asdecimal=True)

# Percentages such as tax and discount rates
PercentType = Numeric(7, 3, asdecimal=True)
