"""Plugin discovery — find bundles, pick their entry type, instantiate it.

Discovery sources:
  1. A plugin directory, scanned once. Each ``.py`` file, ``.zip`` archive
     and package directory in it is one bundle.
  2. Entry-points under the "serverpilot.plugins" group (installed
     third-party packages).

Every bundle must define exactly one concrete class satisfying
:class:`~serverpilot.plugins.base.ServerPlugin`, constructible with no
arguments. A bundle that fails any step becomes a :class:`BundleLoadError`
in the returned :class:`LoadReport`; it never stops the other bundles from
loading.
"""
from __future__ import annotations

import importlib
import importlib.metadata
import importlib.util
import inspect
import logging
import re
import sys
import types
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import BundleLoadError, LoadFailure
from .base import PluginBundle, ServerPlugin

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "serverpilot.plugins"
MODULE_PREFIX = "serverpilot_bundle_"


@dataclass
class LoadReport:
    """Outcome of one discovery pass."""

    bundles: list[PluginBundle] = field(default_factory=list)
    errors: list[BundleLoadError] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)

    def extend(self, other: LoadReport) -> None:
        self.bundles.extend(other.bundles)
        self.errors.extend(other.errors)
        self.ignored.extend(other.ignored)

    @property
    def ok(self) -> bool:
        return not self.errors


# ── Directory bundles ───────────────────────────────────────────────────────


def discover_bundles(directory: str | Path) -> LoadReport:
    """Load every bundle found directly inside *directory*.

    Bundles are visited in name order so the resulting table is stable.
    A missing directory yields an empty report.
    """
    report = LoadReport()
    root = Path(directory)
    if not root.is_dir():
        logger.info("Plugin directory %s does not exist; no bundles loaded", root)
        return report

    for path in sorted(root.iterdir()):
        if not _is_bundle(path):
            logger.debug("Ignoring %s: not a plugin bundle", path.name)
            report.ignored.append(path.name)
            continue
        try:
            bundle = load_bundle(path)
        except BundleLoadError as exc:
            logger.warning("Could not load plugin %s", exc)
            report.errors.append(exc)
            continue
        logger.info("Loaded plugin %s (%s)", bundle.origin, bundle.name)
        report.bundles.append(bundle)
    return report


def load_bundle(path: Path) -> PluginBundle:
    """Import one bundle and instantiate its entry type.

    Raises:
        BundleLoadError: with the :class:`LoadFailure` that stopped it.
    """
    origin = path.name
    module_name = MODULE_PREFIX + _safe_stem(path)
    try:
        modules = _import_bundle(path, module_name)
        entry = _select_entry_type(origin, modules)
        instance = _instantiate(origin, entry)
    except BundleLoadError:
        _forget(module_name)
        raise
    return PluginBundle(origin=origin, instance=instance)


def _is_bundle(path: Path) -> bool:
    if path.name.startswith((".", "_")):
        return False
    if path.is_dir():
        return (path / "__init__.py").is_file()
    return path.suffix in (".py", ".zip")


def _safe_stem(path: Path) -> str:
    stem = path.stem if path.is_file() else path.name
    return re.sub(r"\W", "_", stem)


def _import_bundle(path: Path, module_name: str) -> list[types.ModuleType]:
    if path.suffix == ".zip":
        return _import_archive(path, module_name)
    if path.is_dir():
        spec = importlib.util.spec_from_file_location(
            module_name, path / "__init__.py", submodule_search_locations=[str(path)]
        )
    else:
        spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise BundleLoadError(path.name, "couldn't be opened", LoadFailure.IO_FAILURE)

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except OSError as exc:
        raise BundleLoadError(path.name, f"couldn't be opened: {exc}", LoadFailure.IO_FAILURE) from exc
    except Exception as exc:
        raise BundleLoadError(
            path.name,
            f"raised {type(exc).__name__} while being imported: {exc}",
            LoadFailure.IMPORT_FAILURE,
        ) from exc
    return [module]


def _import_archive(path: Path, module_name: str) -> list[types.ModuleType]:
    """Import the top-level modules of a zip archive.

    The archive is mounted as the ``__path__`` of an empty package named
    *module_name*; the zip import hook resolves its members from there.
    """
    try:
        with zipfile.ZipFile(path) as archive:
            members = archive.namelist()
            bad = archive.testzip()
    except zipfile.BadZipFile as exc:
        raise BundleLoadError(path.name, "is corrupted", LoadFailure.CORRUPT_ARCHIVE) from exc
    except OSError as exc:
        raise BundleLoadError(path.name, f"couldn't be opened: {exc}", LoadFailure.IO_FAILURE) from exc
    if bad is not None:
        raise BundleLoadError(path.name, f"is corrupted ({bad})", LoadFailure.CORRUPT_ARCHIVE)

    names = sorted(
        {m[:-3] for m in members if "/" not in m and m.endswith(".py")}
        | {m.split("/", 1)[0] for m in members if m.count("/") == 1 and m.endswith("/__init__.py")}
    )
    if not names:
        raise BundleLoadError(path.name, "contains no Python modules", LoadFailure.NO_ENTRY_TYPE)

    package = types.ModuleType(module_name)
    package.__path__ = [str(path)]
    sys.modules[module_name] = package

    modules = []
    for name in names:
        try:
            modules.append(importlib.import_module(f"{module_name}.{name}"))
        except Exception as exc:
            raise BundleLoadError(
                path.name,
                f"module {name!r} raised {type(exc).__name__} while being imported: {exc}",
                LoadFailure.IMPORT_FAILURE,
            ) from exc
    return modules


def _forget(module_name: str) -> None:
    for name in [n for n in sys.modules if n == module_name or n.startswith(module_name + ".")]:
        del sys.modules[name]


# ── Entry type selection ────────────────────────────────────────────────────


def _candidate_types(modules: list[types.ModuleType]) -> list[type]:
    """Plugin classes defined (not merely imported) in the bundle modules."""
    found: list[type] = []
    for module in modules:
        for _, obj in inspect.getmembers(module, inspect.isclass):
            if obj.__module__ != module.__name__ or obj in found:
                continue
            if getattr(obj, "_is_protocol", False):
                continue
            if issubclass(obj, ServerPlugin):
                found.append(obj)
    return found


def _select_entry_type(origin: str, modules: list[types.ModuleType]) -> type:
    candidates = _candidate_types(modules)
    if not candidates:
        raise BundleLoadError(
            origin, "does not define a class implementing the plugin protocol", LoadFailure.NO_ENTRY_TYPE
        )
    concrete = [c for c in candidates if not inspect.isabstract(c)]
    if not concrete:
        names = ", ".join(c.__name__ for c in candidates)
        raise BundleLoadError(origin, f"{names} is an abstract class", LoadFailure.ABSTRACT_ENTRY_TYPE)
    if len(concrete) > 1:
        names = ", ".join(c.__name__ for c in concrete)
        raise BundleLoadError(
            origin, f"defines more than one plugin class ({names})", LoadFailure.AMBIGUOUS_ENTRY_TYPE
        )
    return concrete[0]


def _instantiate(origin: str, entry: type) -> Any:
    try:
        inspect.signature(entry).bind()
    except TypeError as exc:
        raise BundleLoadError(
            origin, f"{entry.__name__} has no no-argument constructor", LoadFailure.CONSTRUCTOR_SIGNATURE
        ) from exc
    except ValueError:
        pass  # no introspectable signature; let the call decide
    try:
        return entry()
    except Exception as exc:
        raise BundleLoadError(
            origin,
            f"{entry.__name__}'s constructor raised {type(exc).__name__}: {exc}",
            LoadFailure.CONSTRUCTOR_FAULT,
        ) from exc


# ── Entry points ────────────────────────────────────────────────────────────


def discover_entry_points(group: str = ENTRY_POINT_GROUP) -> LoadReport:
    """Load all plugins from the *group* entry-point group.

    An entry point may name a plugin class (instantiated with no arguments)
    or a ready-made plugin instance.
    """
    report = LoadReport()
    try:
        eps = importlib.metadata.entry_points(group=group)
    except Exception as exc:
        logger.warning("Entry-point discovery failed: %s", exc)
        return report

    for ep in eps:
        origin = f"{ep.name} ({ep.value})"
        try:
            obj = ep.load()
        except Exception as exc:
            error = BundleLoadError(
                origin, f"raised {type(exc).__name__} while being imported: {exc}", LoadFailure.IMPORT_FAILURE
            )
            logger.warning("Could not load plugin %s", error)
            report.errors.append(error)
            continue
        try:
            instance = _instantiate(origin, obj) if inspect.isclass(obj) else obj
            if not isinstance(instance, ServerPlugin):
                raise BundleLoadError(
                    origin, "does not implement the plugin protocol", LoadFailure.NO_ENTRY_TYPE
                )
        except BundleLoadError as exc:
            logger.warning("Could not load plugin %s", exc)
            report.errors.append(exc)
            continue
        logger.info("Loaded plugin %s", origin)
        report.bundles.append(PluginBundle(origin=origin, instance=instance))
    return report
