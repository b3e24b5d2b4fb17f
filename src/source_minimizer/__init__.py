"""source-minimizer package."""

from . import (
    config,
    cutter,
    document,
    forkserver,
    invariants,
    language,
    logging,
    python_language,
    query,
    scratch,
    strategies,
    types,
    minimizer,
    main,
)  # noqa: F401

__all__ = [
    "config",
    "cutter",
    "document",
    "forkserver",
    "invariants",
    "language",
    "logging",
    "main",
    "minimizer",
    "python_language",
    "query",
    "scratch",
    "strategies",
    "types",
]
