#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from __future__ import annotations

from typing import (
    Dict, List, Optional, Set, Tuple, Union, Any, Type, TypeVar, Callable,
    Awaitable, Iterable, Iterator, Mapping, MutableMapping, Sequence,
    AsyncIterator, AsyncIterable, AsyncContextManager, Generic, TYPE_CHECKING,
    cast,
  )
from types import TracebackType
from typing_extensions import Self, TypeAlias

JsonableTypes = (str, int, float, bool, dict, list)
"""Python types that can be serialized to JSON as-is"""

Jsonable: TypeAlias = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
"""A value that can be serialized to/deserialized from JSON"""

JsonableDict: TypeAlias = Dict[str, Jsonable]
"""A JSON object"""

HostAndPort: TypeAlias = Tuple[str, int]
"""An (ip_address, port) pair"""
