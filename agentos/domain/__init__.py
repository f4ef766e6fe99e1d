"""
Domain layer for the AgentOS back-office.

This layer contains business entities, value objects, and domain logic
following Domain-Driven Design principles.
"""
