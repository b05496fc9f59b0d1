"""
rcv_node/app.py
---------------
Thin entrypoint for running the FastAPI app via:

    uvicorn rcv_node.app:app

All real route wiring lives in rcv_node.api.main.
"""

from .api.main import create_app

app = create_app()
