"""
Persistence package for the Users Service.

Provides the PostgreSQL store that owns user rows and assigns their ids.
"""
