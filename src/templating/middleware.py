import inspect
import logging
import sys
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from fastapi import Depends, Request
from jinja2 import Environment, TemplateError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import HTMLResponse, PlainTextResponse, Response

from .environment import TemplateLoadError, clone_environment, load_environment

logger = logging.getLogger(__name__)

DEFAULT_DIRECTORY = "templates"

Transformer = Callable[[Environment, Request], Optional[Awaitable[None]]]


class Templating:
    """Holds the parsed template set and the per-request transformers.

    Usage:
        templating = Templating.from_glob("templates/**/*").using(add_filters)
        app.add_middleware(TemplatingMiddleware, templating=templating)
    """

    def __init__(self, environment: Optional[Environment] = None) -> None:
        """Loads the default ``templates`` directory unless an environment is given."""
        if environment is None:
            environment = self._load(f"{DEFAULT_DIRECTORY}/**/*")
        self._environment = environment
        self._transformers: List[Transformer] = []

    @classmethod
    def from_glob(cls, pattern: str, **options: Any) -> "Templating":
        """Parses every template matched by the glob, exiting the process on failure.

        Args:
            pattern: Glob such as ``templates/**/*``.
            **options: Extra ``jinja2.Environment`` settings.
        """
        return cls(cls._load(pattern, **options))

    @classmethod
    def from_directory(cls, directory: str, **options: Any) -> "Templating":
        """Parses every template below the directory, exiting the process on failure."""
        return cls.from_glob(f"{directory}/**/*", **options)

    @classmethod
    def custom(cls, environment: Environment) -> "Templating":
        """Uses a caller-built environment as is, for instance to change autoescaping."""
        return cls(environment)

    @staticmethod
    def _load(pattern: str, **options: Any) -> Environment:
        try:
            return load_environment(pattern, **options)
        except (TemplateLoadError, TemplateError, UnicodeDecodeError) as e:
            print(f"Parsing error(s): {e}")
            sys.exit(1)

    @property
    def environment(self) -> Environment:
        return self._environment

    @property
    def transformers(self) -> Tuple[Transformer, ...]:
        return tuple(self._transformers)

    def using(self, transformer: Transformer) -> "Templating":
        """Registers a function applied to each request's environment copy.

        Transformers run in registration order before the request handler,
        e.g. to register a filter that depends on the request.
        """
        self._transformers.append(transformer)
        return self

    async def prepare(self, request: Request) -> Environment:
        """Returns a transformed copy of the environment for one request."""
        environment = clone_environment(self._environment)
        for transformer in self._transformers:
            result = transformer(environment, request)
            if inspect.isawaitable(result):
                await result
        return environment


class TemplatingMiddleware(BaseHTTPMiddleware):
    """Stores a per-request environment at ``request.state.templates``."""

    def __init__(self, app, templating: Templating) -> None:
        super().__init__(app)
        self.templating = templating

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.templates = await self.templating.prepare(request)
        return await call_next(request)


async def get_templates(request: Request) -> Environment:
    """Get the request's template environment."""
    templates = getattr(request.state, "templates", None)
    if templates is None:
        raise RuntimeError("To use the templates dependency, TemplatingMiddleware is required.")
    return templates


Templates = Annotated[Environment, Depends(get_templates)]


def render_template(
    templates: Environment,
    template_name: str,
    context: Optional[Mapping[str, Any]] = None,
    status_code: int = 200,
    headers: Optional[Dict[str, str]] = None,
) -> Response:
    """Renders a template into an HTML response.

    Any template error is logged and answered with a generic 500 response.
    """
    try:
        content = templates.get_template(template_name).render(context or {})
    except TemplateError as e:
        logger.exception(f"Failed to render template '{template_name}': {e}")
        return PlainTextResponse("Internal Server Error", status_code=500)
    return HTMLResponse(content, status_code=status_code, headers=headers)
