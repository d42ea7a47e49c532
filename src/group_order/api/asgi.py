"""ASGI entrypoint for the group order API."""

from group_order.api.app import create_app
from group_order.containers import build_container

container = build_container()
app = create_app(container)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=container.settings.host, port=container.settings.port)
