"""Application package for the study planner backend.

This package exposes the service, repository and model modules used by
the FastAPI application. Pure semester and grade helpers live in
`studyplanner.utils`; individual modules carry their own documentation.
"""
