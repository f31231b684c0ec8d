"""
Pure domain layer: value rules, DTOs, hierarchy building, the lock
override policy and entry metadata.  No database access.
"""
