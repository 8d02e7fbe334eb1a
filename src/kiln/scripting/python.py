"""Sandboxed Python-expression backend (asteval).

Scripts are a safe subset of Python evaluated by ``asteval.Interpreter``:
no imports, no dunder access.  The value of the last expression statement
is the result::

    title = name.upper()
    {"title": title, "count": n * 2}

Symbols created by one evaluation are removed before the next, and
builtins a script rebinds (``len = ...``) are restored.
"""

from __future__ import annotations

from kiln._errors import ScriptError
from kiln.scripting.backend import ScriptBackend
from kiln.scripting.value import Mapping, ScriptValue, from_python, to_python


class PythonBackend(ScriptBackend):
    """Python expression language through a persistent ``asteval.Interpreter``."""

    name = "python"
    extensions = (".py",)

    def __init__(self) -> None:
        from asteval import Interpreter

        self._interp = Interpreter(use_numpy=False)
        self._baseline = dict(self._interp.symtable)

    def evaluate(
        self,
        source: str,
        bindings: Mapping | None = None,
        *,
        origin: str = "<script>",
    ) -> ScriptValue:
        symtable = self._interp.symtable
        for name in [n for n in symtable if n not in self._baseline]:
            del symtable[name]
        for name, value in self._baseline.items():
            if symtable.get(name) is not value:
                symtable[name] = value
        for key, value in (bindings or Mapping()).entries:
            symtable[key] = to_python(value)

        self._interp.error = []
        result = self._interp.eval(source, show_errors=False)
        if self._interp.error:
            err = self._interp.error[0]
            exc_name, message = err.get_error()
            lineno = getattr(err, "lineno", None)
            location = f"{origin}:{lineno}" if lineno else origin
            raise ScriptError(self.name, location, f"{exc_name}: {message}".strip())

        try:
            return from_python(result)
        except TypeError as exc:
            raise ScriptError(self.name, origin, str(exc)) from exc
