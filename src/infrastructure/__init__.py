"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- identity: Hosted identity provider (email/password accounts)
- snowflake: Document persistence
- storage: Page templates in object storage (R2/S3)

These wrappers translate between external formats and the protocols
core depends on.
"""
