"""Document change triggers keyed by wildcard path patterns.

Pattern segments:
    ``{name}``  named single-segment capture, exposed in ``change.params``
    ``*``       unnamed single-segment match
    ``**``      unnamed match of one or more segments
    anything else matches literally
"""
from __future__ import annotations

import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Pattern, Union

from pydantic import BaseModel, ConfigDict

from cloudstub.firestore.errors import InvalidTriggerPattern
from cloudstub.firestore.models import ChangeType
from cloudstub.firestore.snapshots import DocumentSnapshot

logger = logging.getLogger(__name__)

_PARAM_SEGMENT = re.compile(r"^\{([^{}]*)\}$")


class TriggerChange(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    before: DocumentSnapshot
    after: DocumentSnapshot
    params: Dict[str, str]
    path: str
    change_type: ChangeType


TriggerHandler = Callable[[TriggerChange], Union[None, Awaitable[Any]]]


@dataclass
class TriggerHandlers:
    on_create: Optional[TriggerHandler] = None
    on_update: Optional[TriggerHandler] = None
    on_delete: Optional[TriggerHandler] = None

    def for_change(self, change_type: ChangeType) -> Optional[TriggerHandler]:
        if change_type is ChangeType.CREATE:
            return self.on_create
        if change_type is ChangeType.UPDATE:
            return self.on_update
        return self.on_delete


@dataclass(eq=False)
class TriggerRegistration:
    pattern: str
    matcher: Pattern[str]
    param_names: List[str]
    handlers: TriggerHandlers = field(default_factory=TriggerHandlers)

    def match(self, path: str) -> Optional[Dict[str, str]]:
        found = self.matcher.match(path)
        if found is None:
            return None
        return {name: found.group(f"p{index}") for index, name in enumerate(self.param_names)}


def compile_pattern(pattern: str):
    """Compile a path pattern into ``(regex, param_names)``."""
    if not isinstance(pattern, str) or not pattern.strip("/"):
        raise InvalidTriggerPattern(message=f"Empty trigger pattern: {pattern!r}", path=str(pattern))

    param_names: List[str] = []
    pieces: List[str] = []
    for segment in pattern.strip("/").split("/"):
        if not segment:
            raise InvalidTriggerPattern(message=f"Empty segment in trigger pattern {pattern!r}", path=pattern)
        param = _PARAM_SEGMENT.match(segment)
        if param:
            name = param.group(1).strip()
            if not name:
                raise InvalidTriggerPattern(message=f"Unnamed parameter in trigger pattern {pattern!r}", path=pattern)
            if name in param_names:
                raise InvalidTriggerPattern(
                    message=f"Duplicate parameter '{name}' in trigger pattern {pattern!r}", path=pattern
                )
            pieces.append(f"(?P<p{len(param_names)}>[^/]+)")
            param_names.append(name)
        elif "{" in segment or "}" in segment:
            raise InvalidTriggerPattern(message=f"Malformed segment '{segment}' in {pattern!r}", path=pattern)
        elif segment == "**":
            pieces.append(".+")
        elif segment == "*":
            pieces.append("[^/]+")
        else:
            pieces.append(re.escape(segment))
    return re.compile("^" + "/".join(pieces) + "$"), param_names


class TriggerRegistry:
    def __init__(self) -> None:
        self._registrations: List[TriggerRegistration] = []

    def __len__(self) -> int:
        return len(self._registrations)

    def register(self, pattern: str, handlers: TriggerHandlers) -> Callable[[], None]:
        matcher, param_names = compile_pattern(pattern)
        registration = TriggerRegistration(pattern, matcher, param_names, handlers)
        self._registrations.append(registration)
        logger.debug(f"Registered trigger for '{pattern}' (params={param_names})")

        def unregister() -> None:
            self._registrations = [entry for entry in self._registrations if entry is not registration]

        return unregister

    def clear(self) -> None:
        self._registrations = []

    async def dispatch(self, path: str, before: DocumentSnapshot, after: DocumentSnapshot) -> None:
        """Invoke matching handlers one at a time, in registration order.

        Handler exceptions propagate to the caller.
        """
        change_type = ChangeType.classify(before.exists, after.exists)
        for registration in list(self._registrations):
            params = registration.match(path)
            if params is None:
                continue
            handler = registration.handlers.for_change(change_type)
            if handler is None:
                continue
            logger.debug(f"Dispatching {change_type.value} on {path} to '{registration.pattern}'")
            change = TriggerChange(
                before=before,
                after=after,
                params=params,
                path=path,
                change_type=change_type,
            )
            result = handler(change)
            if inspect.isawaitable(result):
                await result
