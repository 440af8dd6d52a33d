"""
Core upload/delete logic for the image host.

This module is framework-agnostic - it doesn't import FastAPI or httpx.
The remote API is reached through the StorageGateway protocol, so the
orchestration can be tested in isolation and the transport swapped out.
"""
