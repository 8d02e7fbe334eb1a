"""Kiln error hierarchy.

All kiln-specific errors inherit from KilnError for easy catching.

Fatal errors (``ConfigError``, ``ContentError``, ``CycleError``, ``OutputError``,
``ScriptBackendError``) abort a whole generation.  The remaining errors are
per-artifact: the scheduler records them as diagnostics and keeps going.
"""

from __future__ import annotations


class KilnError(Exception):
    """Base error for all kiln operations."""


class ConfigError(KilnError):
    """Invalid or missing configuration."""


class ContentError(KilnError):
    """The content tree cannot be read (missing or unreadable root)."""


class ScriptError(KilnError):
    """A script failed to parse or raised while running.

    Attributes:
        backend: Name of the scripting backend (``lua``, ``javascript``, ``python``).
        location: ``origin`` or ``origin:line`` of the failure.
        message: The backend's error message.

    """

    def __init__(self, backend: str, location: str, message: str) -> None:
        self.backend = backend
        self.location = location
        self.message = message
        super().__init__(f"{backend} script error at {location}: {message}")


class ScriptBackendError(KilnError):
    """A scripting backend could not be initialized."""


class DecodeError(KilnError):
    """A script value does not have the shape the caller asked for.

    Attributes:
        field: Path of the offending field, e.g. ``$.hooks[0].step``.
        expected: Description of the expected type.
        got: Kind of the value actually found.

    """

    def __init__(self, field: str, expected: str, got: str) -> None:
        self.field = field
        self.expected = expected
        self.got = got
        super().__init__(f"{field}: expected {expected}, got {got}")


class TransformError(KilnError):
    """A pipeline step failed for one artifact.

    Attributes:
        stage: Name of the failing step.
        path: Node id of the artifact being transformed.
        cause: The underlying exception or a description of it.

    """

    def __init__(self, stage: str, path: str, cause: BaseException | str) -> None:
        self.stage = stage
        self.path = path
        self.cause = cause
        super().__init__(f"{stage} failed for {path}: {cause}")


class RenderError(KilnError):
    """A page could not be rendered through its layout.

    Attributes:
        artifact: Node id of the page.
        template_name: Layout the page asked for.
        reason: What went wrong.

    """

    def __init__(self, artifact: str, template_name: str, reason: str) -> None:
        self.artifact = artifact
        self.template_name = template_name
        self.reason = reason
        super().__init__(f"cannot render {artifact} with {template_name!r}: {reason}")


class CycleError(KilnError):
    """The build graph contains a dependency cycle.

    Attributes:
        members: Node ids on the cycle, in traversal order.

    """

    def __init__(self, members: list[str] | tuple[str, ...]) -> None:
        self.members = tuple(members)
        chain = " -> ".join([*self.members, self.members[0]]) if self.members else ""
        super().__init__(f"dependency cycle: {chain}")


class OutputError(KilnError):
    """The output directory cannot be prepared.

    Attributes:
        path: The directory or file that could not be touched.

    """

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"{path}: {reason}")


FATAL_ERRORS: tuple[type[KilnError], ...] = (
    ConfigError,
    ContentError,
    CycleError,
    OutputError,
    ScriptBackendError,
)
