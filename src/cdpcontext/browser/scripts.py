"""Init script values accepted by BrowserContext.add_init_script.

Callers hand over a script in one of three shapes. The value is resolved once,
at the API boundary, into a tagged variant; everything past that point only
deals with the resulting source text.
"""

import json
from collections.abc import Mapping
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict

from cdpcontext.exceptions import UsageError


class JSFunction(BaseModel):
    """A JavaScript function expression, e.g. ``'(a, b) => window.x = a + b'``."""

    model_config = ConfigDict(frozen=True)

    expression: str


class RawSource(BaseModel):
    """Script source passed directly as a string."""

    model_config = ConfigDict(frozen=True)

    kind: Literal['raw'] = 'raw'
    source: str


class StructuredSource(BaseModel):
    """Script source passed as ``{'content': ...}``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal['structured'] = 'structured'
    content: str

    @property
    def source(self) -> str:
        return self.content


class CallableSource(BaseModel):
    """A function invoked immediately with the forwarded arguments."""

    model_config = ConfigDict(frozen=True)

    kind: Literal['callable'] = 'callable'
    expression: str
    args: tuple[Any, ...] = ()

    @property
    def source(self) -> str:
        forwarded = ', '.join(json.dumps(arg) for arg in self.args)
        return f'({self.expression})({forwarded});'


InitScript = Union[RawSource, StructuredSource, CallableSource]


def resolve_init_script(script: Any, arg: Any = None) -> InitScript:
    """Resolve a caller supplied script value.

    Args:
        script: A source string, a mapping with a ``content`` key, or a
            :class:`JSFunction`.
        arg: Argument forwarded to a function script. Must be JSON
            serializable. Ignored for the other shapes.

    Raises:
        UsageError: for any other value.
    """
    if isinstance(script, (RawSource, StructuredSource, CallableSource)):
        return script
    if isinstance(script, str):
        return RawSource(source=script)
    if isinstance(script, Mapping):
        content = script.get('content')
        if not isinstance(content, str):
            raise UsageError(
                f'init script object must have a string "content" field: {script!r}',
                operation='addInitScript',
            )
        return StructuredSource(content=content)
    if isinstance(script, JSFunction):
        args = () if arg is None else (arg,)
        try:
            json.dumps(args)
        except (TypeError, ValueError) as e:
            raise UsageError(f'init script argument is not serializable: {e}', operation='addInitScript') from e
        return CallableSource(expression=script.expression, args=args)

    raise UsageError(f'unsupported init script value: {type(script).__name__}', operation='addInitScript')
