"""Card subjects that are either fixed values or computed from call arguments."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Union


@dataclass(frozen=True)
class FixedSubject:
    value: Any

    def resolve(self, *args: Any, **kwargs: Any) -> Any:
        return self.value


@dataclass(frozen=True)
class ComputedSubject:
    fn: Callable[..., Any]

    def resolve(self, *args: Any, **kwargs: Any) -> Any:
        return self.fn(*args, **kwargs)


Subject = Union[FixedSubject, ComputedSubject]


def as_subject(subject: Any) -> Subject:
    """Coerce a raw subject: callables are computed per call, anything else is fixed.

    Wrap a callable in ``FixedSubject`` to use the callable itself as the subject.
    """

    if isinstance(subject, (FixedSubject, ComputedSubject)):
        return subject
    if callable(subject):
        return ComputedSubject(subject)
    return FixedSubject(subject)
