"""
API module - FastAPI application and routes.

Run with: uvicorn cloudview.api.main:app --reload
"""
