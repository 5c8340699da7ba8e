from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from jinja2 import Environment, FileSystemLoader

from proto_pojo.models import (
    CustomType,
    Enum,
    Field,
    FieldLabel,
    FieldType,
    Message,
    ProtoModel,
    ScalarType,
    TypeDecl,
)

# Proto scalar type -> Java type.
# uint32/fixed32 widen to long; uint64/fixed64 stay long and lose the top bit.
SCALAR_TYPE_MAP: Dict[ScalarType, str] = {
    ScalarType.DOUBLE: "double",
    ScalarType.FLOAT: "float",
    ScalarType.INT32: "int",
    ScalarType.SINT32: "int",
    ScalarType.SFIXED32: "int",
    ScalarType.INT64: "long",
    ScalarType.SINT64: "long",
    ScalarType.SFIXED64: "long",
    ScalarType.UINT32: "long",
    ScalarType.FIXED32: "long",
    ScalarType.UINT64: "long",
    ScalarType.FIXED64: "long",
    ScalarType.BOOL: "boolean",
    ScalarType.STRING: "String",
    ScalarType.BYTES: "byte[]",
}

# Java primitive -> boxed type, for List<T> elements and optional fields
BOXED_TYPE_MAP: Dict[str, str] = {
    "int": "Integer",
    "long": "Long",
    "float": "Float",
    "double": "Double",
    "boolean": "Boolean",
}

JAVA_KEYWORDS = frozenset({
    "abstract", "assert", "boolean", "break", "byte", "case", "catch", "char",
    "class", "const", "continue", "default", "do", "double", "else", "enum",
    "extends", "false", "final", "finally", "float", "for", "goto", "if",
    "implements", "import", "instanceof", "int", "interface", "long", "native",
    "new", "null", "package", "private", "protected", "public", "return",
    "short", "static", "strictfp", "super", "switch", "synchronized", "this",
    "throw", "throws", "transient", "true", "try", "void", "volatile", "while",
})

# java.util types the generated code refers to by simple name
JAVA_UTIL_TYPES = ("Arrays", "List", "Objects")

_INDENT = "    "


def java_base_type(ty: FieldType) -> str:
    """Java type of a single (non-repeated, non-optional) value of ty."""
    if isinstance(ty, ScalarType):
        return SCALAR_TYPE_MAP[ty]
    if isinstance(ty, CustomType):
        return ty.name
    raise TypeError(f"Unknown field type {ty!r}")


def java_field_type(field: Field, list_type: str = "List") -> str:
    base = java_base_type(field.ty)
    if field.label is FieldLabel.REPEATED:
        return f"{list_type}<{BOXED_TYPE_MAP.get(base, base)}>"
    if field.label is FieldLabel.OPTIONAL:
        return BOXED_TYPE_MAP.get(base, base)
    return base


def _java_identifier(name: str) -> str:
    if name in JAVA_KEYWORDS:
        return name + "_"
    return name


def _accessor_suffix(field_name: str) -> str:
    """Convert a proto field name to its getter/setter suffix.

    foo_bar -> FooBar, so the accessors become getFooBar()/setFooBar().
    """
    suffix = "".join(p[:1].upper() + p[1:] for p in field_name.split("_"))
    if suffix == "Class":
        # Object.getClass() is final
        suffix += "_"
    return suffix


def _field_template_data(field: Field, util: Dict[str, str]) -> Dict[str, str]:
    java_type = java_field_type(field, util["List"])
    name = _java_identifier(field.name)
    arrays = util["Arrays"]
    is_bytes = java_base_type(field.ty) == "byte[]"

    if field.is_repeated and is_bytes:
        # List.equals() would compare the byte[] elements by reference
        equals_expr = (
            f"(this.{name} == null ? that.{name} == null : that.{name} != null"
            f" && {arrays}.deepEquals(this.{name}.toArray(), that.{name}.toArray()))"
        )
        hash_expr = f"({name} == null ? 0 : {arrays}.deepHashCode({name}.toArray()))"
        to_string_expr = f'({name} == null ? "null" : {arrays}.deepToString({name}.toArray()))'
    elif is_bytes:
        equals_expr = f"{arrays}.equals(this.{name}, that.{name})"
        hash_expr = f"{arrays}.hashCode({name})"
        to_string_expr = f"{arrays}.toString({name})"
    else:
        if java_type in ("int", "long", "boolean"):
            equals_expr = f"this.{name} == that.{name}"
        elif java_type == "float":
            equals_expr = f"Float.compare(this.{name}, that.{name}) == 0"
        elif java_type == "double":
            equals_expr = f"Double.compare(this.{name}, that.{name}) == 0"
        else:
            equals_expr = f"{util['Objects']}.equals(this.{name}, that.{name})"
        hash_expr = name
        to_string_expr = name

    return {
        "java_type": java_type,
        "name": name,
        "accessor": _accessor_suffix(field.name),
        "equals_expr": equals_expr,
        "hash_expr": hash_expr,
        "to_string_expr": to_string_expr,
    }


def _type_names(decl: TypeDecl) -> Set[str]:
    """Simple type names declared in or referenced from decl's file."""
    names = {decl.name}
    if isinstance(decl, Enum):
        return names
    for f in decl.fields:
        if isinstance(f.ty, CustomType) and "." not in f.ty.name:
            names.add(f.ty.name)
    for nested in decl.nested_types:
        names |= _type_names(nested)
    return names


def _util_type_names(decl: TypeDecl) -> Dict[str, str]:
    """How each java.util type is written in decl's file.

    A proto type called List, Objects or Arrays takes the simple name, so
    the java.util type is spelled out in full and not imported.
    """
    taken = _type_names(decl)
    return {n: f"java.util.{n}" if n in taken else n for n in JAVA_UTIL_TYPES}


def _collect_util_types(decl: TypeDecl) -> Set[str]:
    """java.util types needed by decl and everything nested inside it."""
    used: Set[str] = set()
    if isinstance(decl, Enum):
        return used
    if decl.fields:
        used.add("Objects")
    for f in decl.fields:
        if f.is_repeated:
            used.add("List")
        if java_base_type(f.ty) == "byte[]":
            used.add("Arrays")
    for nested in decl.nested_types:
        used |= _collect_util_types(nested)
    return used


def _collect_imports(decl: TypeDecl, util: Dict[str, str]) -> List[str]:
    return sorted(f"java.util.{n}" for n in _collect_util_types(decl) if util[n] == n)


def _get_template_env() -> Environment:
    template_dir = Path(__file__).parent.parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _render_nested(env: Environment, decl: TypeDecl, util: Dict[str, str]) -> str:
    source = _render_decl(env, decl, java_package=None, imports=[], nested=True, util=util)
    return textwrap.indent(source.rstrip("\n"), _INDENT)


def _render_decl(
    env: Environment,
    decl: TypeDecl,
    java_package: Optional[str],
    imports: List[str],
    nested: bool,
    util: Dict[str, str],
) -> str:
    if isinstance(decl, Enum):
        return render_enum(decl, java_package, env=env)
    return render_message(
        decl, java_package, env=env, imports=imports, nested=nested, util=util
    )


def render_message(
    message: Message,
    java_package: Optional[str] = None,
    env: Optional[Environment] = None,
    imports: Optional[List[str]] = None,
    nested: bool = False,
    util: Optional[Dict[str, str]] = None,
) -> str:
    """Render a message as a Java POJO class.

    util maps each java.util type to the name it is written as; nested
    classes share the map of the file they are rendered into.
    """
    env = env or _get_template_env()
    template = env.get_template("pojo_class.java.j2")

    if util is None:
        util = _util_type_names(message)
    if imports is None:
        imports = _collect_imports(message, util)
    fields = [_field_template_data(f, util) for f in message.fields]

    equals_lines = []
    to_string_lines = []
    for i, f in enumerate(fields):
        equals_lines.append(("return " if i == 0 else "        && ") + f["equals_expr"])
        separator = ", " if i else ""
        to_string_lines.append(f"\"{separator}{f['name']}=\" + {f['to_string_expr']}")
    if equals_lines:
        equals_lines[-1] += ";"

    return template.render(
        java_package=java_package,
        imports=imports,
        class_modifiers="public static" if nested else "public",
        class_name=message.name,
        fields=fields,
        constructor_params=", ".join(f"{f['java_type']} {f['name']}" for f in fields),
        equals_lines=equals_lines,
        objects=util["Objects"],
        hash_args=", ".join(f["hash_expr"] for f in fields),
        to_string_lines=to_string_lines,
        nested_types=[_render_nested(env, d, util) for d in message.nested_types],
    )


def render_enum(
    enum: Enum,
    java_package: Optional[str] = None,
    env: Optional[Environment] = None,
) -> str:
    """Render an enum as a Java enum carrying each value's proto number."""
    env = env or _get_template_env()
    template = env.get_template("pojo_enum.java.j2")
    return template.render(
        java_package=java_package,
        enum_name=enum.name,
        values=[{"name": _java_identifier(v.name), "number": v.number} for v in enum.values],
    )


def java_file_name(type_name: str, java_package: Optional[str]) -> str:
    file_name = f"{type_name}.java"
    if java_package:
        return f"{java_package.replace('.', '/')}/{file_name}"
    return file_name


def render(model: ProtoModel, java_package: Optional[str] = None) -> List[Tuple[str, str]]:
    """Render every top-level type of model into Java source.

    Returns (relative file path, source) pairs in declaration order. The
    Java package defaults to the proto package; nested types are emitted
    inside their parent's file.
    """
    package = java_package or model.package
    env = _get_template_env()

    sources: List[Tuple[str, str]] = []
    for decl in model.types:
        util = _util_type_names(decl)
        source = _render_decl(
            env,
            decl,
            java_package=package,
            imports=_collect_imports(decl, util),
            nested=False,
            util=util,
        )
        sources.append((java_file_name(decl.name, package), source))
    return sources
