"""
repositories/ - Data Access Layer
==================================
Catalog queries against PostgreSQL (schema_repo) and the in-memory
registry of transactions held open between requests (transaction_registry).
"""
