import logging
import os
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from jinja2 import Environment

from logger import setup_logging
from templating import Templates, Templating, TemplatingMiddleware, render_template

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

TEMPLATE_GLOB = os.getenv("TEMPLATING_GLOB", "templates/**/*")
HOST = os.getenv("TEMPLATING_HOST", "127.0.0.1")
PORT = int(os.getenv("TEMPLATING_PORT", "3000"))


def expose_request_path(environment: Environment, request: Request) -> None:
    """Makes the current request path available to every template."""
    environment.globals["request_path"] = request.url.path


def create_app(templating: Optional[Templating] = None) -> FastAPI:
    """Builds the example application serving ``/hello/{name}``."""
    if templating is None:
        templating = Templating.from_glob(TEMPLATE_GLOB)
    templating.using(expose_request_path)

    app = FastAPI(title="Templating example", version=VERSION)
    app.add_middleware(TemplatingMiddleware, templating=templating)

    @app.get("/hello/{name}")
    def hello(name: str, templates: Templates):
        return render_template(templates, "index.html", {"name": name})

    return app


def main():
    """Serves the example application."""
    setup_logging()
    logger.info(f"Templating example v{VERSION} listening on {HOST}:{PORT}")
    uvicorn.run(create_app(), host=HOST, port=PORT, log_config=None)


if __name__ == "__main__":
    main()
