"""Reduce a proto3 parse tree into the ProtoModel IR.

The reducer is a structural match over rule tags. Anything the grammar
produces but the reducer does not expect raises MalformedTreeError.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from lark import Token, Tree

from proto_pojo.errors import (
    DuplicateDeclaration,
    InvalidEnumDefinition,
    InvalidFieldNumber,
    InvalidStringLiteral,
    MalformedTreeError,
    UnsupportedSyntax,
)
from proto_pojo.models import (
    CustomType,
    Enum,
    EnumValue,
    Field,
    FieldLabel,
    FieldType,
    Message,
    ProtoModel,
    ScalarType,
    TypeDecl,
)
from proto_pojo.parser.string_literal import decode_string_literal

Node = Union[Tree, Token]

SCALAR_TYPES: Dict[str, ScalarType] = {s.value: s for s in ScalarType}

FIELD_LABELS: Dict[str, FieldLabel] = {
    "optional": FieldLabel.OPTIONAL,
    "required": FieldLabel.REQUIRED,
    "repeated": FieldLabel.REPEATED,
}

MAX_FIELD_NUMBER = 2**32 - 1
MIN_ENUM_NUMBER = -(2**31)
MAX_ENUM_NUMBER = 2**31 - 1

# Statements that are accepted but not represented in the IR.
_IGNORED_STATEMENTS = {"import_statement", "option_statement", "reserved_statement"}


def reduce_tree(tree: Tree) -> ProtoModel:
    """Reduce a parse tree rooted at ``proto`` into a ProtoModel.

    Raises a ReduceError subclass for the first defect found.
    """
    if not isinstance(tree, Tree) or tree.data != "proto":
        raise MalformedTreeError(f"Expected a 'proto' tree, got {_describe(tree)}")

    package: Optional[str] = None
    types: List[TypeDecl] = []
    type_names: Set[str] = set()

    for node in tree.children:
        rule = _rule(node)
        if rule == "syntax_statement":
            _reduce_syntax(node)
        elif rule == "package_statement":
            if package is not None:
                line, col = _position(node)
                raise DuplicateDeclaration("file", "package", line, col)
            package = _full_ident(_only_child(node, "full_ident"))
        elif rule in ("message_block", "enum_block"):
            decl = _reduce_type(node)
            _claim_name(type_names, decl.name, "file", node)
            types.append(decl)
        elif rule in _IGNORED_STATEMENTS:
            _check_strings(node)
        else:
            raise MalformedTreeError(f"Unexpected top-level node {_describe(node)}")

    return ProtoModel(package=package, types=tuple(types))


# -- declarations --


def _reduce_type(node: Tree) -> TypeDecl:
    if node.data == "message_block":
        return _reduce_message(node)
    return _reduce_enum(node)


def _reduce_syntax(node: Tree) -> None:
    value_node = _only_child(node, "string_value")
    value = _decode_string_value(value_node)
    if value != b"proto3":
        line, col = _position(node)
        raise UnsupportedSyntax(
            f"Only proto3 is supported, got syntax {value.decode('utf-8', 'replace')!r}",
            line,
            col,
        )


def _reduce_message(node: Tree) -> Message:
    """message_block: message_name message_body"""
    name = _token_text(_only_child(node, "message_name"))
    body = _only_child(node, "message_body")
    scope = f"message '{name}'"

    fields: List[Field] = []
    field_names: Set[str] = set()
    accessor_names: Set[str] = set()
    nested: List[TypeDecl] = []
    nested_names: Set[str] = set()

    for element in body.children:
        if _rule(element) != "message_element" or len(element.children) != 1:
            raise MalformedTreeError(f"Unexpected node in {scope}: {_describe(element)}")
        inner = element.children[0]
        rule = _rule(inner)

        if rule == "field":
            field = _reduce_field(inner)
            _claim_field(field_names, accessor_names, field.name, scope, inner)
            fields.append(field)
        elif rule == "oneof":
            for field, field_node in _reduce_oneof(inner):
                _claim_field(field_names, accessor_names, field.name, scope, field_node)
                fields.append(field)
        elif rule in ("message_block", "enum_block"):
            decl = _reduce_type(inner)
            _claim_name(nested_names, decl.name, scope, inner)
            nested.append(decl)
        elif rule in _IGNORED_STATEMENTS:
            _check_strings(inner)
        else:
            raise MalformedTreeError(f"Unexpected node in {scope}: {_describe(inner)}")

    return Message(name=name, fields=tuple(fields), nested_types=tuple(nested))


def _reduce_oneof(node: Tree) -> Iterator[Tuple[Field, Tree]]:
    """Flatten the members of a oneof; the grouping itself is not kept."""
    for element in node.children:
        rule = _rule(element)
        if rule == "oneof_name":
            continue
        if rule != "oneof_element" or len(element.children) != 1:
            raise MalformedTreeError(f"Unexpected node in oneof: {_describe(element)}")
        inner = element.children[0]
        if _rule(inner) == "oneof_field":
            yield _reduce_field(inner), inner
        elif _rule(inner) == "option_statement":
            _check_strings(inner)
        else:
            raise MalformedTreeError(f"Unexpected node in oneof: {_describe(inner)}")


def _reduce_field(node: Tree) -> Field:
    """field: field_modifier? type_reference field_name "=" tag field_options?"""
    label = FieldLabel.SINGULAR
    ty: Optional[FieldType] = None
    name: Optional[str] = None
    order: Optional[int] = None

    for child in node.children:
        rule = _rule(child)
        if rule == "field_modifier":
            label = FIELD_LABELS[_token_text(child)]
        elif rule == "type_reference":
            ty = _reduce_type_reference(child)
        elif rule == "field_name":
            name = _token_text(child)
        elif rule == "tag":
            order = _reduce_tag(child)
        elif rule == "field_options":
            _check_strings(child)
        else:
            raise MalformedTreeError(f"Unexpected node in field: {_describe(child)}")

    if ty is None or name is None or order is None:
        raise MalformedTreeError(f"Incomplete field node {_describe(node)}")
    return Field(ty=ty, name=name, order=order, label=label)


def _reduce_type_reference(node: Tree) -> FieldType:
    type_name = _full_ident(_only_child(node, "full_ident"))
    scalar = SCALAR_TYPES.get(type_name)
    if scalar is not None:
        return scalar
    return CustomType(type_name)


def _reduce_tag(node: Tree) -> int:
    value_node = _only_child(node, "integer_value")
    line, col = _position(value_node)
    try:
        number = _integer_value(value_node)
    except ValueError:
        raise InvalidFieldNumber(
            f"Unparsable field number {_node_text(value_node)!r}", line, col
        ) from None
    if number < 1 or number > MAX_FIELD_NUMBER:
        raise InvalidFieldNumber(
            f"Field number {number} is out of range 1..{MAX_FIELD_NUMBER}", line, col
        )
    return number


def _reduce_enum(node: Tree) -> Enum:
    """enum_block: enum_name enum_body"""
    name = _token_text(_only_child(node, "enum_name"))
    body = _only_child(node, "enum_body")
    scope = f"enum '{name}'"

    values: List[EnumValue] = []
    value_names: Set[str] = set()

    for element in body.children:
        if _rule(element) != "enum_element" or len(element.children) != 1:
            raise MalformedTreeError(f"Unexpected node in {scope}: {_describe(element)}")
        inner = element.children[0]
        rule = _rule(inner)
        if rule == "enum_field":
            value = _reduce_enum_field(inner, scope)
            _claim_name(value_names, value.name, scope, inner)
            if not values and value.number != 0:
                line, col = _position(inner)
                raise InvalidEnumDefinition(
                    f"First value of {scope} must be 0, got {value.name} = {value.number}",
                    line,
                    col,
                )
            values.append(value)
        elif rule in _IGNORED_STATEMENTS:
            _check_strings(inner)
        else:
            raise MalformedTreeError(f"Unexpected node in {scope}: {_describe(inner)}")

    if not values:
        line, col = _position(node)
        raise InvalidEnumDefinition(f"{scope} must declare at least one value", line, col)
    return Enum(name=name, values=tuple(values))


def _reduce_enum_field(node: Tree, scope: str) -> EnumValue:
    """enum_field: enum_field_name "=" enum_field_value field_options?"""
    name: Optional[str] = None
    number: Optional[int] = None

    for child in node.children:
        rule = _rule(child)
        if rule == "enum_field_name":
            name = _token_text(child)
        elif rule == "enum_field_value":
            value_node = _only_child(child, "integer_value")
            line, col = _position(value_node)
            try:
                number = _integer_value(value_node)
            except ValueError:
                raise InvalidEnumDefinition(
                    f"Unparsable value {_node_text(value_node)!r} in {scope}", line, col
                ) from None
            if not MIN_ENUM_NUMBER <= number <= MAX_ENUM_NUMBER:
                raise InvalidEnumDefinition(
                    f"Value {number} in {scope} does not fit in a signed 32-bit integer",
                    line,
                    col,
                )
        elif rule == "field_options":
            _check_strings(child)
        else:
            raise MalformedTreeError(f"Unexpected node in enum value: {_describe(child)}")

    if name is None or number is None:
        raise MalformedTreeError(f"Incomplete enum value node {_describe(node)}")
    return EnumValue(name=name, number=number)


# -- literals --


def _integer_value(node: Tree) -> int:
    """integer_value: MINUS? INT_LIT, in decimal, hex or octal notation."""
    negative = False
    digits: Optional[str] = None
    for child in node.children:
        if isinstance(child, Token) and child.type == "MINUS":
            negative = True
        elif isinstance(child, Token) and child.type == "INT_LIT":
            digits = str(child)
        else:
            raise MalformedTreeError(f"Unexpected node in integer: {_describe(child)}")
    if digits is None:
        raise MalformedTreeError("Integer node without digits")

    if digits[:2] in ("0x", "0X"):
        value = int(digits[2:], 16)
    elif len(digits) > 1 and digits.startswith("0"):
        value = int(digits[1:], 8)
    else:
        value = int(digits, 10)
    return -value if negative else value


def _decode_string_value(node: Tree) -> bytes:
    """string_value: STRING_LIT+, adjacent literals are concatenated."""
    parts = []
    for tok in node.children:
        if not isinstance(tok, Token) or tok.type != "STRING_LIT":
            raise MalformedTreeError(f"Unexpected node in string: {_describe(tok)}")
        try:
            parts.append(decode_string_literal(str(tok)))
        except InvalidStringLiteral as e:
            raise InvalidStringLiteral(e.reason, e.span, e.offset, tok.line, tok.column) from None
    return b"".join(parts)


def _check_strings(node: Tree) -> None:
    """Decode every string literal below node, for statements the IR drops."""
    for sub in node.iter_subtrees_topdown():
        if sub.data == "string_value":
            _decode_string_value(sub)


def _full_ident(node: Tree) -> str:
    parts = []
    for tok in node.children:
        if not isinstance(tok, Token) or tok.type != "IDENT":
            raise MalformedTreeError(f"Unexpected node in identifier: {_describe(tok)}")
        parts.append(str(tok))
    return ".".join(parts)


# -- tree helpers --


def _claim_name(seen: Set[str], name: str, scope: str, node: Tree) -> None:
    if name in seen:
        line, col = _position(node)
        raise DuplicateDeclaration(scope, name, line, col)
    seen.add(name)


def _claim_field(
    names: Set[str], accessors: Set[str], name: str, scope: str, node: Tree
) -> None:
    """Claim a field name and the getter/setter suffix it renders to.

    foo_bar and fooBar both become getFooBar(), so the second one is a
    duplicate even though the proto names differ.
    """
    _claim_name(names, name, scope, node)
    accessor = "".join(p[:1].upper() + p[1:] for p in name.split("_"))
    if accessor in accessors:
        line, col = _position(node)
        raise DuplicateDeclaration(scope, name, line, col)
    accessors.add(accessor)


def _rule(node: Node) -> Optional[str]:
    if isinstance(node, Tree):
        return str(node.data)
    return None


def _only_child(node: Tree, rule: str) -> Tree:
    matches = [c for c in node.children if _rule(c) == rule]
    if len(matches) != 1:
        raise MalformedTreeError(
            f"Expected exactly one '{rule}' in {_describe(node)}, found {len(matches)}"
        )
    return matches[0]


def _token_text(node: Tree) -> str:
    """Text of a rule that wraps exactly one token, e.g. message_name."""
    if len(node.children) != 1 or not isinstance(node.children[0], Token):
        raise MalformedTreeError(f"Expected a single token in {_describe(node)}")
    return str(node.children[0])


def _node_text(node: Tree) -> str:
    return "".join(str(t) for t in node.scan_values(lambda v: isinstance(v, Token)))


def _position(node: Node) -> Tuple[Optional[int], Optional[int]]:
    if isinstance(node, Token):
        return node.line, node.column
    meta = node.meta
    if getattr(meta, "empty", True):
        return None, None
    return meta.line, meta.column


def _describe(node: Node) -> str:
    if isinstance(node, Tree):
        return f"<{node.data}>"
    if isinstance(node, Token):
        return f"{node.type} {str(node)!r}"
    return repr(node)
