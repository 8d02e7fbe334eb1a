"""Lua backend (lupa).

Each evaluation runs the chunk in a fresh environment built from a snapshot
of the runtime's globals taken at startup.  Library tables (``string``,
``table``, ``math``...) are copied per run and ``_G`` points at the run's
own environment, so nothing a script assigns, through globals or through
``_G``, is seen by the next one.  The chunk's first return value is the
result.
"""

from __future__ import annotations

import re
from typing import Any

from kiln._errors import ScriptError
from kiln.scripting.backend import ScriptBackend
from kiln.scripting.value import (
    ABSENT,
    Mapping,
    ScriptValue,
    Sequence,
    Text,
    from_python,
    to_python,
)

_MAX_DEPTH = 100

_SNAPSHOT = """
function()
  local saved = {}
  for name, value in pairs(_G) do
    saved[name] = value
  end
  return saved
end
"""

_RUNNER = """
function(source, chunkname, env, baseline)
  for name, value in pairs(baseline) do
    if name ~= "_G" and rawget(env, name) == nil then
      if type(value) == "table" then
        local copy = {}
        for k, v in pairs(value) do
          copy[k] = v
        end
        env[name] = copy
      else
        env[name] = value
      end
    end
  end
  env._G = env
  local chunk, err = load(source, chunkname, "t", env)
  if not chunk then
    error(err, 0)
  end
  return chunk()
end
"""

# "origin:12: message"
_LOCATION_RE = re.compile(r"^(?P<origin>.+?):(?P<line>\d+): (?P<message>.*)$", re.DOTALL)


class LuaBackend(ScriptBackend):
    """Lua 5.x through lupa's ``LuaRuntime``."""

    name = "lua"
    extensions = (".lua",)

    def __init__(self) -> None:
        import lupa

        self._lupa = lupa
        self._lua = lupa.LuaRuntime(unpack_returned_tuples=True, register_eval=False)
        self._run = self._lua.eval(_RUNNER)
        self._baseline = self._lua.eval(_SNAPSHOT)()

    def evaluate(
        self,
        source: str,
        bindings: Mapping | None = None,
        *,
        origin: str = "<script>",
    ) -> ScriptValue:
        env = self._lua.table_from(
            {key: self._to_lua(value) for key, value in (bindings or Mapping()).entries}
        )
        try:
            result = self._run(source, "=" + origin, env, self._baseline)
        except self._lupa.LuaError as exc:
            raise _script_error(origin, str(exc)) from exc

        # Multiple return values arrive as a tuple; only the first counts.
        if isinstance(result, tuple):
            result = result[0] if result else None
        return self._from_lua(result, origin, 0)

    def _to_lua(self, value: ScriptValue) -> Any:
        match value:
            case Mapping(entries=entries):
                return self._lua.table_from({k: self._to_lua(v) for k, v in entries})
            case Sequence(items=items):
                return self._lua.table_from([self._to_lua(v) for v in items])
        return to_python(value)

    def _from_lua(self, obj: Any, origin: str, depth: int) -> ScriptValue:
        if depth > _MAX_DEPTH:
            raise ScriptError(self.name, origin, "table nesting too deep (cyclic table?)")
        if obj is None:
            return ABSENT
        if isinstance(obj, bytes):
            return Text(obj.decode("utf-8"))
        if isinstance(obj, (bool, int, float, str)):
            try:
                return from_python(obj)
            except TypeError as exc:
                raise ScriptError(self.name, origin, str(exc)) from exc

        kind = self._lupa.lua_type(obj)
        if kind != "table":
            msg = f"cannot return a Lua {kind or type(obj).__name__} from a script"
            raise ScriptError(self.name, origin, msg)

        keys = list(obj.keys())
        if not keys:
            return Mapping()
        if all(isinstance(k, int) and not isinstance(k, bool) for k in keys):
            if sorted(keys) == list(range(1, len(keys) + 1)):
                return Sequence(
                    tuple(self._from_lua(obj[i], origin, depth + 1) for i in range(1, len(keys) + 1))
                )
        if not all(isinstance(k, str) for k in keys):
            msg = "table keys must be all strings or a 1..n sequence"
            raise ScriptError(self.name, origin, msg)
        # Lua tables are unordered; sort keys so results are reproducible.
        return Mapping(
            tuple((k, self._from_lua(obj[k], origin, depth + 1)) for k in sorted(keys))
        )


def _script_error(origin: str, raw: str) -> ScriptError:
    first = raw.strip().split("\nstack traceback:", 1)[0]
    match = _LOCATION_RE.match(first)
    if match:
        return ScriptError(
            "lua",
            f"{match['origin']}:{match['line']}",
            match["message"].strip(),
        )
    return ScriptError("lua", origin, first)
