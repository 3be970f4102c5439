"""
FastAPI backend for the WooCommerce import.

Provides REST API endpoints for:
- Triggering and monitoring import runs
- Viewing import history and statistics
- Browsing imported legacy orders
"""
