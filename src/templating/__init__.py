"""
Templating module for integrating Jinja2 templating with FastAPI request handling.
"""

from .environment import (
    GlobLoader,
    MemoryBytecodeCache,
    TemplateLoadError,
    build_environment,
    clone_environment,
    load_environment,
)
from .middleware import (
    Templates,
    Templating,
    TemplatingMiddleware,
    Transformer,
    get_templates,
    render_template,
)
