"""Application package for the academic feedback backend.

This package exposes the service, repository and model modules used by
the FastAPI application. Students submit feedback through one-time
access tokens; submissions are stored both as raw responses and as
denormalized snapshots for reporting.
"""
