"""Application package for the Nepal MCQ quiz backend.

This package exposes the daily quiz engine, the service, repository and
model modules used by the FastAPI application. Individual modules contain
the concrete implementations and documentation.
"""
