"""Extract structural summaries from tree-sitter ASTs."""

from __future__ import annotations

import importlib
import logging
import re

import tree_sitter

from testsmith.config import GRAMMAR_MODULES
from testsmith.constants import ReturnCategory
from testsmith.parsing.schemas import OperationInfo, StructuralSummary
from testsmith.resilience.errors import ParseFailure

logger = logging.getLogger(__name__)

_PY_PRIMITIVES = frozenset({
    "int", "float", "str", "bool", "bytes", "complex", "bytearray",
})
_PY_COLLECTIONS = frozenset({
    "list", "dict", "set", "tuple", "frozenset",
    "List", "Dict", "Set", "Tuple", "FrozenSet",
    "Sequence", "Mapping", "Iterable", "Iterator", "Generator",
    "Collection", "MutableMapping", "MutableSequence", "AsyncIterator",
})
_JAVA_PRIMITIVES = frozenset({
    "int", "long", "short", "byte", "char", "boolean", "float",
    "double", "String", "Integer", "Long", "Short", "Byte",
    "Character", "Boolean", "Float", "Double", "BigDecimal",
})
_JAVA_COLLECTIONS = frozenset({
    "List", "Set", "Map", "Collection", "Iterable", "Stream",
    "ArrayList", "HashMap", "HashSet", "LinkedList", "Queue", "Deque",
})
_ACCESSOR_RE = re.compile(r"^(get|set|is|has)(_|[A-Z])")
_PY_PROPERTY_DECORATORS = ("property", "cached_property")
_PY_STATIC_DECORATORS = ("staticmethod", "classmethod")
_PY_OVERRIDE_DECORATORS = ("override",)


def categorize_return(type_text: str | None, language: str) -> ReturnCategory:
    """Classify a return type annotation into a coarse category."""
    if type_text is None:
        return ReturnCategory.UNKNOWN
    text = type_text.strip()
    if language == "java":
        if text == "void":
            return ReturnCategory.VOID
        base = text.split("<", 1)[0].rsplit(".", 1)[-1]
        if base == "Optional":
            return ReturnCategory.OPTIONAL
        if base in _JAVA_PRIMITIVES:
            return ReturnCategory.PRIMITIVE
        if base in _JAVA_COLLECTIONS or text.endswith("[]"):
            return ReturnCategory.COLLECTION
        return ReturnCategory.OBJECT

    if text == "None":
        return ReturnCategory.VOID
    if "Optional[" in text or re.search(r"\|\s*None\b|\bNone\s*\|", text):
        return ReturnCategory.OPTIONAL
    base = text.split("[", 1)[0].rsplit(".", 1)[-1]
    if base in _PY_PRIMITIVES:
        return ReturnCategory.PRIMITIVE
    if base in _PY_COLLECTIONS:
        return ReturnCategory.COLLECTION
    return ReturnCategory.OBJECT


class TreeSitterSourceParser:
    """SourceParser backed by tree-sitter grammars (Python, Java)."""

    def __init__(self, language: str = "python") -> None:
        if language not in GRAMMAR_MODULES:
            raise ValueError(f"unsupported language: {language}")
        self.language = language

    def parse(
        self, source_text: str, *, unit_name: str = ""
    ) -> StructuralSummary:
        """Parse ``source_text`` into a summary.

        Raises ParseFailure when the grammar is unavailable or the
        source contains syntax errors.
        """
        parser = _get_parser(self.language)
        if parser is None:
            raise ParseFailure(
                f"no tree-sitter grammar installed for {self.language}"
            )
        tree = parser.parse(source_text.encode("utf-8"))
        root = tree.root_node
        if root.has_error:
            line = _first_error_line(root)
            raise ParseFailure(
                f"syntax error in {unit_name or 'source'} near line {line}",
                detail=f"line={line}",
            )

        if self.language == "java":
            qualified, operations = _summarize_java(root, unit_name)
        else:
            qualified, operations = unit_name or "<module>", _summarize_python(root)

        logger.debug(
            "event=source_parsed unit=%s language=%s operations=%d",
            qualified,
            self.language,
            len(operations),
        )
        return StructuralSummary(
            qualified_name=qualified,
            language=self.language,
            operations=tuple(operations),
        )


# ---------------------------------------------------------------------------
# Python
# ---------------------------------------------------------------------------


def _summarize_python(root: tree_sitter.Node) -> list[OperationInfo]:
    operations: list[OperationInfo] = []
    for child in root.named_children:
        definition, decorators = _unwrap_decorated(child)
        if definition is None:
            continue
        if definition.type == "function_definition":
            operations.append(
                _python_operation(definition, decorators, owner=None)
            )
        elif definition.type == "class_definition":
            class_name = _text(definition.child_by_field_name("name"))
            body = definition.child_by_field_name("body")
            if body is None:
                continue
            for member in body.named_children:
                method, method_decorators = _unwrap_decorated(member)
                if method is not None and method.type == "function_definition":
                    operations.append(
                        _python_operation(
                            method, method_decorators, owner=class_name
                        )
                    )
    return operations


def _unwrap_decorated(
    node: tree_sitter.Node,
) -> tuple[tree_sitter.Node | None, list[str]]:
    """Return (definition, decorator names) for plain or decorated nodes."""
    if node.type != "decorated_definition":
        return node, []
    decorators: list[str] = []
    for child in node.named_children:
        if child.type == "decorator":
            decorators.append(_text(child).lstrip("@").split("(", 1)[0].strip())
    return node.child_by_field_name("definition"), decorators


def _python_operation(
    node: tree_sitter.Node,
    decorators: list[str],
    owner: str | None,
) -> OperationInfo:
    name = _text(node.child_by_field_name("name"))
    return_node = node.child_by_field_name("return_type")
    return_type = _text(return_node) if return_node is not None else None
    params_node = node.child_by_field_name("parameters")
    params = tuple(
        _text(p)
        for p in (params_node.named_children if params_node else [])
        if _text(p) not in ("self", "cls")
    )
    short_decorators = [d.rsplit(".", 1)[-1] for d in decorators]
    is_constructor = owner is not None and name == "__init__"
    is_property = any(
        d in _PY_PROPERTY_DECORATORS or d in ("setter", "getter", "deleter")
        for d in short_decorators
    )
    category = (
        ReturnCategory.VOID
        if is_constructor
        else categorize_return(return_type, "python")
    )
    return OperationInfo(
        name=name,
        return_category=category,
        return_type=return_type,
        error_types=tuple(_python_raised(node)),
        parameters=params,
        start_line=node.start_point[0] + 1,
        end_line=node.end_point[0] + 1,
        owner=owner,
        is_constructor=is_constructor,
        is_static=any(d in _PY_STATIC_DECORATORS for d in short_decorators),
        is_accessor=is_property or bool(_ACCESSOR_RE.match(name)),
        is_overridden=any(d in _PY_OVERRIDE_DECORATORS for d in short_decorators),
    )


def _python_raised(node: tree_sitter.Node) -> list[str]:
    """Exception names raised anywhere in a function body, in order."""
    found: list[str] = []
    for raise_node in _descendants(node, "raise_statement"):
        for expr in raise_node.named_children:
            target = expr
            if expr.type == "call":
                target = expr.child_by_field_name("function") or expr
            if target.type in ("identifier", "attribute"):
                name = _text(target).rsplit(".", 1)[-1]
                if name and name[0].isupper() and name not in found:
                    found.append(name)
            break  # ignore the "from <cause>" part
    return found


# ---------------------------------------------------------------------------
# Java
# ---------------------------------------------------------------------------

_JAVA_TYPE_DECLARATIONS = (
    "class_declaration",
    "enum_declaration",
    "record_declaration",
    "interface_declaration",
)


def _summarize_java(
    root: tree_sitter.Node, unit_name: str
) -> tuple[str, list[OperationInfo]]:
    package = ""
    primary = ""
    operations: list[OperationInfo] = []
    for child in root.named_children:
        if child.type == "package_declaration":
            for part in child.named_children:
                if part.type in ("scoped_identifier", "identifier"):
                    package = _text(part)
        elif child.type in _JAVA_TYPE_DECLARATIONS:
            class_name = _text(child.child_by_field_name("name"))
            primary = primary or class_name
            body = child.child_by_field_name("body")
            if body is None:
                continue
            for member in _java_members(body):
                if member.type in ("method_declaration", "constructor_declaration"):
                    operations.append(_java_operation(member, class_name))

    qualified = unit_name or ".".join(p for p in (package, primary) if p)
    return qualified or "<unit>", operations


def _java_members(body: tree_sitter.Node) -> list[tree_sitter.Node]:
    """Direct members of a type body; enum members sit one level down."""
    members: list[tree_sitter.Node] = []
    for child in body.named_children:
        if child.type == "enum_body_declarations":
            members.extend(child.named_children)
        else:
            members.append(child)
    return members


def _java_operation(node: tree_sitter.Node, owner: str) -> OperationInfo:
    name = _text(node.child_by_field_name("name"))
    is_constructor = node.type == "constructor_declaration"
    type_node = node.child_by_field_name("type")
    return_type = _text(type_node) if type_node is not None else None

    modifiers: list[str] = []
    annotations: list[str] = []
    declared: list[str] = []
    for child in node.children:
        if child.type == "modifiers":
            for mod in child.children:
                if mod.type in ("marker_annotation", "annotation"):
                    annotations.append(
                        _text(mod.child_by_field_name("name"))
                    )
                else:
                    modifiers.append(_text(mod))
        elif child.type == "throws":
            declared.extend(
                _text(t).rsplit(".", 1)[-1] for t in child.named_children
            )
    for throw in _descendants(node, "throw_statement"):
        for expr in throw.named_children:
            if expr.type == "object_creation_expression":
                thrown = _text(expr.child_by_field_name("type"))
                if thrown and thrown not in declared:
                    declared.append(thrown)

    params_node = node.child_by_field_name("parameters")
    params = tuple(
        _text(p)
        for p in (params_node.named_children if params_node else [])
    )
    return OperationInfo(
        name=name,
        return_category=(
            ReturnCategory.VOID
            if is_constructor
            else categorize_return(return_type, "java")
        ),
        return_type=return_type,
        error_types=tuple(declared),
        parameters=params,
        start_line=node.start_point[0] + 1,
        end_line=node.end_point[0] + 1,
        owner=owner,
        is_constructor=is_constructor,
        is_static="static" in modifiers,
        is_accessor=bool(_ACCESSOR_RE.match(name)),
        is_overridden="Override" in annotations,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _text(node: tree_sitter.Node | None) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def _descendants(
    node: tree_sitter.Node, node_type: str
) -> list[tree_sitter.Node]:
    out: list[tree_sitter.Node] = []
    stack = list(node.children)
    while stack:
        current = stack.pop()
        if current.type == node_type:
            out.append(current)
        stack.extend(current.children)
    out.sort(key=lambda n: n.start_byte)
    return out


def _first_error_line(node: tree_sitter.Node) -> int:
    stack = [node]
    while stack:
        current = stack.pop(0)
        if current.type == "ERROR" or current.is_missing:
            return current.start_point[0] + 1
        stack.extend(current.children)
    return node.start_point[0] + 1


_parser_cache: dict[str, tree_sitter.Parser] = {}


def _get_parser(language: str) -> tree_sitter.Parser | None:
    """Get or create a cached tree-sitter parser."""
    if language in _parser_cache:
        return _parser_cache[language]

    module_name = GRAMMAR_MODULES.get(language)
    if module_name is None:
        return None

    try:
        mod = importlib.import_module(module_name)
        capsule: object = mod.language()
        parser = tree_sitter.Parser(tree_sitter.Language(capsule))
    except (ImportError, AttributeError):
        logger.warning("event=grammar_unavailable language=%s", language)
        return None
    _parser_cache[language] = parser
    return parser
