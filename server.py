import threading
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from cyber_hub import hub_config
from cyber_hub.backend import Backend, build_backend


class Event(BaseModel):
    type: str
    payload: Optional[Any] = None


def get_backend(app: FastAPI) -> Backend:
    """
    The app's single Backend, built on first use. Worker threads racing on
    the first requests all get the same instance, so one HubState owns the
    storage key.
    """
    backend = app.state.backend
    if backend is not None:
        return backend
    with app.state.backend_lock:
        if app.state.backend is None:
            app.state.backend = build_backend()
        return app.state.backend


def create_app(backend: Backend | None = None) -> FastAPI:
    """
    HTTP face of the hub. Pass a Backend to skip the environment wiring
    (tests do this with an in-memory store and fake model clients).
    """
    app = FastAPI(title="Cyber Hub")

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allow all origins for dev
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.backend = backend
    app.state.backend_lock = threading.Lock()

    # sync handlers: FastAPI runs them in its threadpool while model calls block
    @app.post("/events")
    def send_event(event: Event, request: Request):
        response = get_backend(request.app)._process_request_data(event.model_dump())
        if response.get("status") == "error" and response.get("message", "").startswith("Unknown request type"):
            raise HTTPException(status_code=400, detail=response["message"])
        return response

    @app.get("/hub")
    def get_hub(request: Request, sort: str = "none"):
        return get_backend(request.app)._process_request_data({"type": "load_hub", "payload": {"sort": sort}})

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=hub_config.HUB_HOST, port=hub_config.HUB_PORT)
