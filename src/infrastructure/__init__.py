"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- b2: Backblaze B2 native API (httpx), plus an in-memory emulator

These wrappers translate between wire formats and our domain models.
"""
