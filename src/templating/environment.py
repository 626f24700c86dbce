import glob
import logging
import threading
from hashlib import sha1
from pathlib import Path, PurePath
from typing import Any, Dict, FrozenSet, List

from jinja2 import (
    BytecodeCache,
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    select_autoescape,
)
from jinja2.bccache import Bucket

logger = logging.getLogger(__name__)

GLOB_CHARS = ("*", "?", "[")


class TemplateLoadError(Exception):
    """Raised when a glob selects no template files."""


def glob_base(pattern: str) -> Path:
    """Returns the literal directory prefix of a glob pattern."""
    base: List[str] = []
    for part in PurePath(pattern).parts:
        if any(char in part for char in GLOB_CHARS):
            break
        base.append(part)
    else:
        # no wildcard at all, the pattern names a single file
        base = base[:-1]
    return Path(*base)


class GlobLoader(FileSystemLoader):
    """Filesystem loader restricted to the files matched by a glob pattern.

    Template names are paths relative to the pattern's literal directory
    prefix, so ``templates/**/*`` serves ``templates/users/list.html`` as
    ``users/list.html``.
    """

    def __init__(self, pattern: str, encoding: str = "utf-8", followlinks: bool = False) -> None:
        self.pattern = pattern
        self.base = glob_base(pattern)
        super().__init__(str(self.base), encoding=encoding, followlinks=followlinks)
        self.names: FrozenSet[str] = self._scan()

    def _scan(self) -> FrozenSet[str]:
        names = set()
        for match in glob.glob(self.pattern, recursive=True):
            path = Path(match)
            if path.is_file():
                names.add(path.relative_to(self.base).as_posix())
        return frozenset(names)

    def get_source(self, environment, template):
        if template not in self.names:
            raise TemplateNotFound(template)
        return super().get_source(environment, template)

    def list_templates(self) -> List[str]:
        return sorted(self.names)


def calling_conventions(environment: Environment) -> str:
    """Fingerprints the filter and test names and how the compiler must call them.

    Compiled code hardcodes whether a filter or test receives the context,
    eval context or environment, so bytecode is only reusable between
    environments with the same fingerprint.
    """
    signature = []
    for kind, functions in (("filter", environment.filters), ("test", environment.tests)):
        for name, func in functions.items():
            pass_arg = getattr(func, "jinja_pass_arg", None)
            signature.append(f"{kind}:{name}:{getattr(pass_arg, 'name', '')}")
    return sha1("\n".join(sorted(signature)).encode("utf-8")).hexdigest()


class MemoryBytecodeCache(BytecodeCache):
    """Process-wide store of compiled templates shared by environment clones.

    Buckets are keyed by template and by the calling conventions of the
    loading environment's filters and tests.
    """

    def __init__(self) -> None:
        self._store: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get_bucket(self, environment: Environment, name: str, filename, source: str) -> Bucket:
        key = f"{self.get_cache_key(name, filename)}:{calling_conventions(environment)}"
        bucket = Bucket(environment, key, self.get_source_checksum(source))
        self.load_bytecode(bucket)
        return bucket

    def load_bytecode(self, bucket: Bucket) -> None:
        with self._lock:
            data = self._store.get(bucket.key)
        if data is not None:
            bucket.bytecode_from_string(data)

    def dump_bytecode(self, bucket: Bucket) -> None:
        data = bucket.bytecode_to_string()
        with self._lock:
            self._store[bucket.key] = data

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._store)


def build_environment(loader, **options: Any) -> Environment:
    """Sets up the Jinja2 environment used for HTML responses.

    Missing variables are render errors and HTML/XML templates are
    autoescaped unless the caller overrides those options.
    """
    settings: Dict[str, Any] = {
        "autoescape": select_autoescape(["html", "htm", "xml"]),
        "undefined": StrictUndefined,
        "bytecode_cache": MemoryBytecodeCache(),
    }
    settings.update(options)
    return Environment(loader=loader, **settings)


def load_environment(pattern: str, **options: Any) -> Environment:
    """Builds an environment over the glob and parses every matched template.

    Raises:
        TemplateLoadError: If the glob matched no file.
        jinja2.TemplateSyntaxError: If a template cannot be parsed.
    """
    loader = GlobLoader(pattern)
    if not loader.names:
        raise TemplateLoadError(f"no templates match '{pattern}'")

    environment = build_environment(loader, **options)
    for name in loader.list_templates():
        source, filename, _ = loader.get_source(environment, name)
        environment.parse(source, name, filename)

    logger.info(f"Loaded {len(loader.names)} template(s) from '{pattern}'")
    return environment


def clone_environment(environment: Environment) -> Environment:
    """Returns a copy of the environment that can be mutated independently.

    The clone shares the loader, the settings and the bytecode cache with its
    source but owns its filters, tests, globals, policies and template cache.
    """
    clone = environment.overlay(cache_size=-1)
    clone.filters = dict(environment.filters)
    clone.tests = dict(environment.tests)
    clone.globals = dict(environment.globals)
    clone.policies = dict(environment.policies)
    return clone
