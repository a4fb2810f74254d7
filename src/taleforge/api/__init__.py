"""FastAPI application exposing the offline store.

This module contains:
- Main FastAPI application and its lifespan
- Dependencies that hand the offline services to endpoints
- Health, queue, sync and recovery endpoints
"""
