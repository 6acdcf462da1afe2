"""
REST API (FastAPI)

The application is built by ``ecosbot.api.main.create_app``.
"""
