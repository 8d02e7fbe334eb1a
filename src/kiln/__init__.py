"""Kiln — an incremental content build engine.

Turns a tree of Markdown, stylesheets, scripts, templates and data files
into a static site, and keeps the output consistent as sources change.
Build logic is scriptable in Lua, JavaScript or sandboxed Python through
one typed value contract.

Quick start::

    import kiln

    kiln.build("my-site/")        # One full generation
    kiln.watch("my-site/")        # Incremental generations on change
    kiln.serve("my-site/")        # Watch + live-reloading preview server

Site layout::

    my-site/
        kiln.yaml                 # optional configuration
        content/                  # pages, stylesheets, scripts, assets
        layouts/                  # Kida templates
        data/                     # global data (yaml/toml/json/lua/js/py)

"""

__version__ = "0.1.0.dev0"
__all__ = [
    "GenerationResult",
    "KilnConfig",
    "Scheduler",
    "__version__",
    "build",
    "serve",
    "watch",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API; keeps ``import kiln`` fast."""
    if name == "KilnConfig":
        from kiln.config import KilnConfig

        return KilnConfig

    if name in ("Scheduler", "GenerationResult"):
        from kiln.build import scheduler

        return getattr(scheduler, name)

    if name in ("build", "watch", "serve"):
        from kiln import app

        return getattr(app, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
