"""Scripting adapter interface and the per-worker engine arena.

Every backend implements one operation::

    evaluate(source, bindings, *, origin) -> ScriptValue

Callers never branch on which backend produced a value.  Interpreters are
costly to start and not safe to share between threads, so ``ScriptEngines``
keeps one instance of each backend per thread, created on first use and
reused for the life of that thread.
"""

from __future__ import annotations

import importlib
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from kiln._errors import ScriptBackendError, ScriptError
from kiln.scripting.value import Mapping

if TYPE_CHECKING:
    from kiln.scripting.value import ScriptValue


class ScriptBackend(ABC):
    """One embedded scripting language.

    Each top-level key of ``bindings`` is visible to the script as a global
    name.  Every evaluation starts from clean script globals; the result is
    the script's final expression or returned value, already converted to
    a ``ScriptValue``.
    """

    name: ClassVar[str]
    extensions: ClassVar[tuple[str, ...]]

    @abstractmethod
    def evaluate(
        self,
        source: str,
        bindings: Mapping | None = None,
        *,
        origin: str = "<script>",
    ) -> ScriptValue:
        """Evaluate *source* and return its result.

        Raises:
            ScriptError: On syntax errors, runtime errors, or results that
                have no script value representation.

        """


# name -> "module:Class", imported on first use
_BACKENDS: dict[str, str] = {
    "lua": "kiln.scripting.lua:LuaBackend",
    "javascript": "kiln.scripting.javascript:JavaScriptBackend",
    "python": "kiln.scripting.python:PythonBackend",
}

_EXTENSIONS: dict[str, str] = {
    ".lua": "lua",
    ".js": "javascript",
    ".py": "python",
}

SCRIPT_EXTENSIONS = frozenset(_EXTENSIONS)


def backend_names() -> tuple[str, ...]:
    return tuple(_BACKENDS)


def backend_name_for(path: Path | str) -> str:
    """Return the backend that handles *path*, by extension.

    Raises:
        ScriptError: If no backend claims the extension.

    """
    suffix = Path(path).suffix.lower()
    try:
        return _EXTENSIONS[suffix]
    except KeyError:
        raise ScriptError("none", str(path), f"no scripting backend for {suffix!r} files") from None


def _load_backend_class(name: str) -> type[ScriptBackend]:
    try:
        target = _BACKENDS[name]
    except KeyError:
        msg = f"unknown scripting backend {name!r}"
        raise ScriptBackendError(msg) from None
    module_name, _, attr = target.partition(":")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


class ScriptEngines:
    """Arena of backend instances, one per backend per thread.

    Instances live in a ``threading.local`` and are never handed to another
    thread.  Only script values travel between workers.

    """

    __slots__ = ("_created", "_lock", "_local")

    def __init__(self) -> None:
        self._local = threading.local()
        self._lock = threading.Lock()
        self._created = 0

    @property
    def instances_created(self) -> int:
        """Total backend instances created across all threads."""
        with self._lock:
            return self._created

    def backend(self, name: str) -> ScriptBackend:
        """Return this thread's instance of backend *name*, creating it if needed.

        Raises:
            ScriptBackendError: If the backend cannot be imported or started.

        """
        instances: dict[str, ScriptBackend] | None = getattr(self._local, "instances", None)
        if instances is None:
            instances = {}
            self._local.instances = instances

        instance = instances.get(name)
        if instance is None:
            cls = _load_backend_class(name)
            try:
                instance = cls()
            except ScriptBackendError:
                raise
            except Exception as exc:
                msg = f"failed to initialize {name} scripting backend: {exc}"
                raise ScriptBackendError(msg) from exc
            instances[name] = instance
            with self._lock:
                self._created += 1
        return instance

    def backend_for(self, path: Path | str) -> ScriptBackend:
        return self.backend(backend_name_for(path))

    def evaluate(
        self,
        source: str,
        bindings: Mapping | None = None,
        *,
        backend: str,
        origin: str = "<script>",
    ) -> ScriptValue:
        return self.backend(backend).evaluate(source, bindings or Mapping(), origin=origin)

    def evaluate_file(self, path: Path, bindings: Mapping | None = None, *, origin: str | None = None) -> ScriptValue:
        """Read *path* and evaluate it with the backend matching its extension."""
        name = backend_name_for(path)
        source = path.read_text(encoding="utf-8")
        return self.evaluate(source, bindings, backend=name, origin=origin or str(path))
