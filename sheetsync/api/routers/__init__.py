"""
FastAPI routers for the import service, one module per area.
"""
