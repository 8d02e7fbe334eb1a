"""Multi-backend scripting — one value model, three interchangeable languages.

Quick Start:
    >>> from kiln.scripting import ScriptEngines, decode, from_python
    >>> engines = ScriptEngines()
    >>> value = engines.evaluate("return n * 2", from_python({"n": 21}), backend="lua")
    >>> decode(value, int)
    42

"""

from kiln.scripting.backend import (
    SCRIPT_EXTENSIONS,
    ScriptBackend,
    ScriptEngines,
    backend_name_for,
    backend_names,
)
from kiln.scripting.decode import decode
from kiln.scripting.value import (
    ABSENT,
    Absent,
    Boolean,
    Mapping,
    Number,
    ScriptValue,
    Sequence,
    Text,
    from_python,
    kind_of,
    to_python,
)

__all__ = [
    "ABSENT",
    "SCRIPT_EXTENSIONS",
    "Absent",
    "Boolean",
    "Mapping",
    "Number",
    "ScriptBackend",
    "ScriptEngines",
    "ScriptValue",
    "Sequence",
    "Text",
    "backend_name_for",
    "backend_names",
    "decode",
    "from_python",
    "kind_of",
    "to_python",
]
