"""
Storage Package.

All persistence of the signal pipeline.

Modules:
- database: Engine, session factory, transaction helpers
- models/: ORM models
- repositories/: Data access layer
"""
