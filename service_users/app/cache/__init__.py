"""
Cache package for the Users Service.

Provides a Redis-backed side-cache holding serialized users. It is never the
source of truth and never raises while serving requests.
"""
