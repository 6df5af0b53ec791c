# =============================================================================
# app/ - FastAPI Application Package
# =============================================================================
# This package contains the FastAPI web application:
# - main.py: App entry point, middleware setup, error handlers
# - config.py: Environment variable loading and settings
# - routers/: API endpoint definitions organized by feature
# - websocket/: Real-time upload batch updates
#
# The app layer is thin - it handles HTTP concerns and delegates
# pipeline work to the studio/ package and item storage to core/.
# =============================================================================
