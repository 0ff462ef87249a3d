"""Domain layer - core business logic and interfaces.

This layer contains:
- Domain entities (messages, delivery records, conversations, outbox entries)
- Error taxonomy
- Storage and transport interfaces
"""
