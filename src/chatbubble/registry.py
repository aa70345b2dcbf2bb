"""Tool descriptors and their resolution into ready-to-invoke tools.

A descriptor is one of three forms:

* a :class:`ToolReference`, resolved through the :class:`ToolContainer`
  (a name bound with :meth:`ToolContainer.bind`, or an import path);
* a :class:`ToolFactory`, a zero-argument callable returning a Tool;
* an already-constructed :class:`~chatbubble.tools.Tool`.

References and factories are resolved fresh on every call and never
cached, since a tool may close over request-scoped state.
"""

import importlib
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Union

from chatbubble.config import ChatSettings
from chatbubble.errors import InvalidToolDescriptor, InvalidToolResult, UnknownToolReference
from chatbubble.tools import Tool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolReference:
    target: str


@dataclass(frozen=True)
class ToolFactory:
    factory: Callable[[], Any]


ToolDescriptor = Union[ToolReference, ToolFactory, Tool]


def as_descriptor(raw: Any) -> ToolDescriptor:
    """Normalize a raw configuration value into a descriptor."""
    if isinstance(raw, (ToolReference, ToolFactory, Tool)):
        return raw
    if isinstance(raw, str):
        return ToolReference(raw)
    if callable(raw):
        return ToolFactory(raw)
    raise InvalidToolDescriptor()


class ToolContainer:
    """Resolves tool references.

    Names bound with :meth:`bind` win; otherwise the reference is read
    as an import path (``"package.module:attr"`` or
    ``"package.module.attr"``).  Classes and zero-argument callables
    found that way are instantiated/called.
    """

    def __init__(self) -> None:
        self._bindings: dict[str, Callable[[], Any]] = {}
        self._lock = threading.Lock()

    def bind(self, name: str, factory: Callable[[], Any]) -> None:
        with self._lock:
            self._bindings[name] = factory

    def make(self, reference: str) -> Any:
        with self._lock:
            factory = self._bindings.get(reference)
        if factory is not None:
            return factory()

        target = self._import(reference)
        if isinstance(target, type) or (callable(target) and not isinstance(target, Tool)):
            return target()
        return target

    def _import(self, reference: str) -> Any:
        if ":" in reference:
            module_name, _, attr = reference.partition(":")
        else:
            module_name, _, attr = reference.rpartition(".")
        if not module_name or not attr:
            raise UnknownToolReference(reference)
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise UnknownToolReference(reference) from e
        target = module
        for part in attr.split("."):
            try:
                target = getattr(target, part)
            except AttributeError as e:
                raise UnknownToolReference(reference) from e
        return target


class ToolRegistry:
    """Configured tools plus tools registered at runtime.

    One registry is shared by every chat session of a process.  The
    dynamic descriptor list is guarded by a lock, so registration from
    one thread is visible to resolution in another; resolution itself
    runs outside the lock on a copy of the list.

    Args:
        settings: Source of the statically configured descriptors,
            read on every :meth:`get_all_tools` call.
        container: Resolves :class:`ToolReference` descriptors.
    """

    def __init__(self, settings: ChatSettings, container: ToolContainer | None = None):
        self.settings = settings
        self.container = container or ToolContainer()
        self._tools: list[Any] = []
        self._lock = threading.Lock()

    def register(self, descriptor: Any) -> None:
        """Register a tool descriptor.  Duplicates are kept."""
        with self._lock:
            self._tools.append(descriptor)

    def register_many(self, descriptors: Iterable[Any]) -> None:
        descriptors = list(descriptors)
        with self._lock:
            self._tools.extend(descriptors)

    def resolve(self, descriptors: Iterable[Any]) -> list[Tool]:
        """Resolve descriptors without registering them."""
        return [self._resolve_one(d) for d in descriptors]

    def all(self) -> list[Tool]:
        """Resolve every dynamically registered descriptor."""
        with self._lock:
            registered = list(self._tools)
        return self.resolve(registered)

    def count(self) -> int:
        with self._lock:
            return len(self._tools)

    def get_all_tools(self) -> list[Tool]:
        """Configured tools first, then dynamically registered ones."""
        configured = self.resolve(self.settings.tools)
        return configured + self.all()

    def clear(self) -> None:
        """Forget dynamically registered tools; configured ones are unaffected."""
        with self._lock:
            self._tools = []

    def _resolve_one(self, raw: Any) -> Tool:
        descriptor = as_descriptor(raw)
        if isinstance(descriptor, Tool):
            return descriptor
        if isinstance(descriptor, ToolReference):
            resolved = self.container.make(descriptor.target)
            if not isinstance(resolved, Tool):
                logger.warning(f"Reference {descriptor.target} did not resolve to a Tool")
                raise InvalidToolResult(
                    f"Reference {descriptor.target!r} must resolve to a Tool instance"
                )
            return resolved
        resolved = descriptor.factory()
        if not isinstance(resolved, Tool):
            raise InvalidToolResult()
        return resolved
