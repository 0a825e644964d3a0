"""
Inferred Type Objects.

The analyzer reasons about a handful of type shapes only:

* `ObjectType`: an instance of a class. Builtins use their builtin name
  (``dict``), classes declared in the batch use their simple name (``Service``)
  and everything else uses its dotted import path (``logging.Logger``).
* `ClassRefType`: the class object itself, as in ``Service.create()``.
* `ModuleType`: an imported module.
* `UnionType`: the merge of diverging control-flow branches or an
  ``Optional``/``Union`` annotation.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

# Names exported by `typing` mapped to the builtin or collections class they
# stand for. Collections classes keep their dotted path so that a batch class
# with the same simple name never passes for one.
TYPING_ALIASES = {
  "Dict": "dict",
  "List": "list",
  "Set": "set",
  "FrozenSet": "frozenset",
  "Tuple": "tuple",
  "Type": "type",
  "Text": "str",
  "DefaultDict": "collections.defaultdict",
  "OrderedDict": "collections.OrderedDict",
  "Counter": "collections.Counter",
  "ChainMap": "collections.ChainMap",
  "Deque": "collections.deque",
  "Mapping": "collections.abc.Mapping",
  "MutableMapping": "collections.abc.MutableMapping",
  "Sequence": "collections.abc.Sequence",
  "MutableSequence": "collections.abc.MutableSequence",
  "Iterable": "collections.abc.Iterable",
  "Iterator": "collections.abc.Iterator",
}

TYPING_MODULES = ("typing_extensions.", "typing.")

DICT_LIKE = frozenset(
  {
    "dict",
    "collections.abc.Mapping",
    "collections.abc.MutableMapping",
    "collections.defaultdict",
    "collections.OrderedDict",
    "collections.Counter",
    "collections.ChainMap",
  }
)
KEY_TYPES = frozenset({"int", "str", "bytes", "bool", "float"})


@dataclass
class SymbolType:
  """
  Base class for inferred types.
  """

  name: str
  """A string representation of the type (e.g. 'str')."""

  def __str__(self) -> str:
    """Returns the type name."""
    return self.name

  def __eq__(self, other: object) -> bool:
    if not isinstance(other, SymbolType):
      return False
    return type(self) is type(other) and str(self) == str(other)

  def __hash__(self) -> int:
    return hash((type(self).__name__, str(self)))


@dataclass(eq=False)
class ObjectType(SymbolType):
  """
  An instance of a class, optionally parameterised (``dict[str, int]``).
  """

  args: Tuple[SymbolType, ...] = field(default_factory=tuple)

  def __str__(self) -> str:
    if not self.args:
      return self.name
    return f"{self.name}[{', '.join(str(a) for a in self.args)}]"


@dataclass(eq=False)
class ClassRefType(SymbolType):
  """
  A reference to a class object (the receiver of a static call).
  """

  def __str__(self) -> str:
    return f"type[{self.name}]"


@dataclass(eq=False)
class ModuleType(SymbolType):
  """
  Represents an imported module or a name reached through one.
  """

  path: str = ""
  """Fully qualified path string (e.g. "os.path")."""

  def __str__(self) -> str:
    return f"module[{self.path}]"


@dataclass(eq=False)
class UnionType(SymbolType):
  """
  Represents a union of potential types resulting from control flow divergence.
  """

  types: List[SymbolType] = field(default_factory=list)

  def __init__(self, types: List[SymbolType]):
    super().__init__("Union")
    self.types = types

  def __str__(self) -> str:
    unique_names = sorted(set(str(t) for t in self.types))
    return f"Union[{', '.join(unique_names)}]"


NONE_TYPE = ObjectType("None")


def normalize_type_name(dotted: str) -> str:
  """
  Maps typing and collections spellings to one canonical name.

  Args:
      dotted: A resolved dotted name such as ``typing.Dict``.

  Returns:
      str: ``dict`` for ``typing.Dict``, ``collections.abc.Mapping`` for
      ``typing.Mapping``, ``Optional`` for ``typing.Optional``, the input
      unchanged otherwise. Bare names are never aliased.
  """
  if dotted.startswith("builtins."):
    return dotted[len("builtins.") :]
  for prefix in TYPING_MODULES:
    if dotted.startswith(prefix) and "." not in dotted[len(prefix) :]:
      name = dotted[len(prefix) :]
      return TYPING_ALIASES.get(name, name)
  return dotted


def make_union(types: Iterable[Optional[SymbolType]]) -> Optional[SymbolType]:
  """
  Creates a deduplicated, flattened union.

  An unknown member (None) makes the whole union unknown.

  Returns:
      Optional[SymbolType]: The single remaining type, a `UnionType`, or None.
  """
  unique: List[SymbolType] = []
  seen = set()
  for t in types:
    if t is None:
      return None
    members = t.types if isinstance(t, UnionType) else [t]
    for member in members:
      key = str(member)
      if key not in seen:
        seen.add(key)
        unique.append(member)
  if not unique:
    return None
  if len(unique) == 1:
    return unique[0]
  return UnionType(unique)


def union_members(t: Optional[SymbolType]) -> List[SymbolType]:
  """Returns the members of a union, or the type itself as a single member."""
  if t is None:
    return []
  if isinstance(t, UnionType):
    return list(t.types)
  return [t]


def is_dict_like(t: Optional[SymbolType]) -> bool:
  """
  True if the type is definitely a mapping.

  Unions and unknown types never qualify, even when every member is a mapping
  on some path. Batch classes never qualify, whatever their name.
  """
  return isinstance(t, ObjectType) and t.name in DICT_LIKE


def is_key_type(t: Optional[SymbolType]) -> bool:
  """True if the type is a scalar usable as a mapping key (or a union of those)."""
  members = union_members(t)
  return bool(members) and all(isinstance(m, ObjectType) and not m.args and m.name in KEY_TYPES for m in members)


def strip_optional(t: Optional[SymbolType]) -> Optional[SymbolType]:
  """Removes ``None`` from a union, so ``Optional[X]`` becomes ``X``."""
  if not isinstance(t, UnionType):
    return t
  rest = [m for m in t.types if m != NONE_TYPE]
  return make_union(rest)
