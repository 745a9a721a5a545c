# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Derive deterministic artifact and function names."""

import hashlib
import re

from exprcapture.forest import GENERATED_SUFFIX

_UNSAFE_CHARACTERS = re.compile(r"[^0-9A-Za-z_]")


def sanitize_path(file_path: str) -> str:
    """Replace path separators and punctuation with underscores.

    Args:
        file_path: File path as reported for a call site.

    Returns:
        Identifier-safe path text, e.g. ``C__test_py`` for ``C:/test.py``.
    """
    return _UNSAFE_CHARACTERS.sub("_", file_path)


def interceptor_file_name(method_name: str, file_path: str, line: int, column: int) -> str:
    return f"Intercepted_{method_name}_{sanitize_path(file_path)}_{line}_{column}{GENERATED_SUFFIX}"


def overload_file_name(module: str, class_name: str | None, method_name: str) -> str:
    """Name the stand-in overload module of a declaration.

    Args:
        module: Dotted module of the declaration.
        class_name: Qualified containing class, if any.
        method_name: Declared function name.

    Returns:
        ``<module>_<class>_<method>_Overload.g.py`` with dots sanitized.
    """
    parts = [sanitize_path(module)]
    if class_name is not None:
        parts.append(sanitize_path(class_name))
    parts.append(method_name)
    return f"{'_'.join(parts)}_Overload{GENERATED_SUFFIX}"


def disambiguated_file_name(file_name: str, identity: str) -> str:
    """Suffix a clashing file name with a digest of its unsanitized identity.

    Args:
        file_name: Derived artifact file name.
        identity: Qualified name or call-site key the name was derived from.

    Returns:
        ``<stem>_<digest>.g.py``, stable across runs.
    """
    digest = hashlib.md5(identity.encode("utf-8")).hexdigest()[:8]  # noqa: S324
    stem = file_name[: -len(GENERATED_SUFFIX)]
    return f"{stem}_{digest}{GENERATED_SUFFIX}"
