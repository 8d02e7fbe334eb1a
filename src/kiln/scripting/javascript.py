"""JavaScript backend (dukpy / Duktape).

The script's completion value is the result, so both a trailing object
literal and the value of the last statement work::

    ({ title: name.toUpperCase() })

The source runs through a direct ``eval`` inside a function scope with the
bindings visible via ``with``; ``var`` and function declarations stay local
to that call.  The global object is snapshotted when the interpreter starts
and put back after every evaluation, so implicit globals are deleted and
reassigned builtins restored.
"""

from __future__ import annotations

import re

from kiln._errors import ScriptError
from kiln.scripting.backend import ScriptBackend
from kiln.scripting.value import Mapping, ScriptValue, from_python, to_python

_BASELINE_KEY = "__kiln_baseline__"

_SNAPSHOT = """\
(function (global) {
  var saved = {};
  var names = Object.getOwnPropertyNames(global);
  for (var i = 0; i < names.length; i++) {
    saved[names[i]] = global[names[i]];
  }
  saved['%(key)s'] = saved;
  global['%(key)s'] = saved;
  return null;
})(this)
""" % {"key": _BASELINE_KEY}

# dukpy rebinds its own ``dukpy`` global on every call; it is left alone.
_WRAPPER = """\
(function (global, bindings, source) {
  try {
    return (function () {
      with (bindings) {
        return eval(source);
      }
    })();
  } finally {
    var saved = global['%(key)s'];
    var names = Object.getOwnPropertyNames(global);
    for (var i = 0; i < names.length; i++) {
      var name = names[i];
      if (name === 'dukpy') {
        continue;
      }
      if (!Object.prototype.hasOwnProperty.call(saved, name)) {
        delete global[name];
      } else if (global[name] !== saved[name]) {
        global[name] = saved[name];
      }
    }
  }
})(this, dukpy['bindings'], dukpy['source'])
""" % {"key": _BASELINE_KEY}

_LINE_RE = re.compile(r"line (\d+)")


class JavaScriptBackend(ScriptBackend):
    """ECMAScript 5.1 through a persistent ``dukpy.JSInterpreter``."""

    name = "javascript"
    extensions = (".js",)

    def __init__(self) -> None:
        import dukpy

        self._dukpy = dukpy
        self._interpreter = dukpy.JSInterpreter()
        self._interpreter.evaljs(_SNAPSHOT)

    def evaluate(
        self,
        source: str,
        bindings: Mapping | None = None,
        *,
        origin: str = "<script>",
    ) -> ScriptValue:
        payload = to_python(bindings or Mapping())
        try:
            result = self._interpreter.evaljs(_WRAPPER, bindings=payload, source=source)
        except self._dukpy.JSRuntimeError as exc:
            message = str(exc).strip().splitlines()[0] if str(exc).strip() else repr(exc)
            line = _LINE_RE.search(message)
            location = f"{origin}:{line.group(1)}" if line else origin
            raise ScriptError(self.name, location, message) from exc

        # dukpy hands back JSON-decoded data; undefined arrives as None.
        try:
            return from_python(result)
        except TypeError as exc:
            raise ScriptError(self.name, origin, str(exc)) from exc
