import pytest
from lark import Tree

from proto_pojo.errors import (
    DuplicateDeclaration,
    InvalidEnumDefinition,
    InvalidFieldNumber,
    InvalidStringLiteral,
    MalformedTreeError,
    ReduceError,
    UnsupportedSyntax,
)
from proto_pojo.models import (
    CustomType,
    Enum,
    EnumValue,
    Field,
    FieldLabel,
    Message,
    ProtoModel,
    ScalarType,
)
from proto_pojo.parser.proto_reducer import reduce_tree
from proto_pojo.parser.proto_tree_parser import parse


def _reduce(text: str) -> ProtoModel:
    return reduce_tree(parse(text))


class TestMessages:
    def test_order_scenario(self):
        model = _reduce("""\
message Order {
  int32 id = 1;
  string customer = 2;
  repeated string items = 3;
}
""")
        assert model == ProtoModel(
            package=None,
            types=(
                Message(
                    name="Order",
                    fields=(
                        Field(ScalarType.INT32, "id", 1),
                        Field(ScalarType.STRING, "customer", 2),
                        Field(ScalarType.STRING, "items", 3, FieldLabel.REPEATED),
                    ),
                ),
            ),
        )

    def test_field_order_is_the_source_tag(self):
        model = _reduce("message A { string c = 5; int32 a = 1; bool b = 3; }")
        fields = model.types[0].fields
        assert [f.name for f in fields] == ["c", "a", "b"]
        assert [f.order for f in fields] == [5, 1, 3]

    def test_tag_numbers_need_not_be_unique(self):
        model = _reduce("message A { int32 a = 1; int32 b = 1; }")
        assert [f.order for f in model.types[0].fields] == [1, 1]

    def test_type_order_preserved(self):
        model = _reduce("""\
package shop;
message B {}
enum A { A_ZERO = 0; }
message C {}
""")
        assert model.package == "shop"
        assert [type(t) for t in model.types] == [Message, Enum, Message]
        assert [t.name for t in model.types] == ["B", "A", "C"]

    def test_all_scalar_keywords(self):
        keywords = [s.value for s in ScalarType]
        body = " ".join(f"{kw} f{i} = {i + 1};" for i, kw in enumerate(keywords))
        model = _reduce(f"message All {{ {body} }}")
        assert [f.ty for f in model.types[0].fields] == list(ScalarType)

    def test_scalar_match_is_case_sensitive(self):
        model = _reduce("message A { Int32 a = 1; String b = 2; }")
        assert [f.ty for f in model.types[0].fields] == [CustomType("Int32"), CustomType("String")]

    def test_custom_types_kept_as_written(self):
        model = _reduce("message A { Other o = 1; foo.bar.Baz b = 2; .pkg.Root r = 3; }")
        assert [f.ty for f in model.types[0].fields] == [
            CustomType("Other"),
            CustomType("foo.bar.Baz"),
            CustomType("pkg.Root"),
        ]

    def test_field_modifiers(self):
        model = _reduce("""\
message A {
    int32 plain = 1;
    optional int32 maybe = 2;
    repeated int32 many = 3;
    required int32 legacy = 4;
}
""")
        assert [f.label for f in model.types[0].fields] == [
            FieldLabel.SINGULAR,
            FieldLabel.OPTIONAL,
            FieldLabel.REPEATED,
            FieldLabel.REQUIRED,
        ]
        assert model.types[0].fields[2].is_repeated is True
        assert model.types[0].fields[3].is_repeated is False

    def test_hex_and_octal_tags(self):
        model = _reduce("message A { int32 a = 0x10; int32 b = 010; int32 c = 4294967295; }")
        assert [f.order for f in model.types[0].fields] == [16, 8, 4294967295]

    def test_oneof_fields_are_flattened(self):
        model = _reduce("""\
message Event {
    int64 at = 1;
    oneof payload {
        string text = 2;
        bytes blob = 3;
    }
    bool done = 4;
}
""")
        fields = model.types[0].fields
        assert [(f.name, f.ty, f.order) for f in fields] == [
            ("at", ScalarType.INT64, 1),
            ("text", ScalarType.STRING, 2),
            ("blob", ScalarType.BYTES, 3),
            ("done", ScalarType.BOOL, 4),
        ]

    def test_nested_types(self):
        model = _reduce("""\
message Order {
    message Address {
        string street = 1;
    }
    enum Status {
        NEW = 0;
        PAID = 1;
    }
    Address shipping_address = 1;
    Status status = 2;
}
""")
        assert len(model.types) == 1
        order = model.types[0]
        assert order.nested_types == (
            Message("Address", (Field(ScalarType.STRING, "street", 1),)),
            Enum("Status", (EnumValue("NEW", 0), EnumValue("PAID", 1))),
        )
        assert order.fields[0].ty == CustomType("Address")

    def test_ignored_statements(self):
        model = _reduce("""\
syntax = "proto3";
import "other.proto";
option java_package = "com.example";

message A {
    option deprecated = true;
    reserved 2, 4 to 6;
    reserved "old";
    int32 id = 1 [deprecated = true];
}
""")
        assert model == ProtoModel(
            types=(Message("A", (Field(ScalarType.INT32, "id", 1),)),),
        )

    def test_empty_message(self):
        model = _reduce("message Empty {}")
        assert model.types == (Message("Empty"),)

    def test_empty_statements_are_ignored(self):
        model = _reduce("""\
syntax = "proto3";;
message A { int32 a = 1;; };
enum E { ZERO = 0;; reserved -5 to -1; };
""")
        assert model == ProtoModel(
            types=(
                Message("A", (Field(ScalarType.INT32, "a", 1),)),
                Enum("E", (EnumValue("ZERO", 0),)),
            ),
        )


class TestFieldNumbers:
    @pytest.mark.parametrize("tag", ["0", "-1", "4294967296", "0x100000000"])
    def test_out_of_range(self, tag):
        with pytest.raises(InvalidFieldNumber) as exc_info:
            _reduce(f"message A {{\n  int32 a = {tag};\n}}")
        assert exc_info.value.line == 2
        assert exc_info.value.column == len("  int32 a = ") + 1

    def test_is_a_reduce_error(self):
        with pytest.raises(ReduceError):
            _reduce("message A { int32 a = 0; }")


class TestEnums:
    def test_values_in_order(self):
        model = _reduce("enum Status { UNKNOWN = 0; PENDING = 1; CANCELED = -4; BIG = 0x7FFFFFFF; }")
        assert model.types[0] == Enum(
            "Status",
            (
                EnumValue("UNKNOWN", 0),
                EnumValue("PENDING", 1),
                EnumValue("CANCELED", -4),
                EnumValue("BIG", 2147483647),
            ),
        )

    def test_first_value_must_be_zero(self):
        with pytest.raises(InvalidEnumDefinition) as exc_info:
            _reduce("enum Status { PENDING = 1; UNKNOWN = 0; }")
        assert "PENDING" in str(exc_info.value)

    def test_first_value_zero_in_other_radix(self):
        model = _reduce("enum E { A = 0x0; B = 00; }")
        assert [v.number for v in model.types[0].values] == [0, 0]

    def test_options_before_first_value(self):
        model = _reduce("enum E { option allow_alias = true; A = 0; B = 0; }")
        assert [v.name for v in model.types[0].values] == ["A", "B"]

    def test_empty_enum(self):
        with pytest.raises(InvalidEnumDefinition):
            _reduce("enum E {}")

    @pytest.mark.parametrize("number", ["2147483648", "-2147483649"])
    def test_out_of_int32_range(self, number):
        with pytest.raises(InvalidEnumDefinition):
            _reduce(f"enum E {{ ZERO = 0; BIG = {number}; }}")

    def test_int32_bounds_accepted(self):
        model = _reduce("enum E { ZERO = 0; MIN = -2147483648; MAX = 2147483647; }")
        assert [v.number for v in model.types[0].values] == [0, -2147483648, 2147483647]

    def test_nested_enum_zero_rule(self):
        with pytest.raises(InvalidEnumDefinition):
            _reduce("message A { enum Kind { ONE = 1; } }")


class TestDuplicates:
    def test_duplicate_field_name(self):
        with pytest.raises(DuplicateDeclaration) as exc_info:
            _reduce("message Order { int32 id = 1; string id = 2; }")
        assert exc_info.value.declaration == "message 'Order'"
        assert exc_info.value.identifier == "id"

    def test_duplicate_field_name_through_oneof(self):
        with pytest.raises(DuplicateDeclaration) as exc_info:
            _reduce("message A { int32 id = 1; oneof choice { string id = 2; } }")
        assert exc_info.value.identifier == "id"

    def test_duplicate_enum_value_name(self):
        with pytest.raises(DuplicateDeclaration) as exc_info:
            _reduce("enum Color { RED = 0; GREEN = 1; RED = 2; }")
        assert exc_info.value.declaration == "enum 'Color'"
        assert exc_info.value.identifier == "RED"

    def test_duplicate_top_level_type(self):
        with pytest.raises(DuplicateDeclaration) as exc_info:
            _reduce("message A {} enum A { Z = 0; }")
        assert exc_info.value.identifier == "A"

    def test_duplicate_nested_type(self):
        with pytest.raises(DuplicateDeclaration):
            _reduce("message A { message B {} message B {} }")

    def test_field_names_with_the_same_accessor(self):
        with pytest.raises(DuplicateDeclaration) as exc_info:
            _reduce("message A { int32 foo_bar = 1; int32 fooBar = 2; }")
        assert exc_info.value.declaration == "message 'A'"
        assert exc_info.value.identifier == "fooBar"
        assert exc_info.value.column == len("message A { int32 foo_bar = 1; ") + 1

    def test_accessor_clash_through_oneof(self):
        with pytest.raises(DuplicateDeclaration) as exc_info:
            _reduce("message A { string Name = 1; oneof o { string name = 2; } }")
        assert exc_info.value.identifier == "name"

    def test_accessor_clash_after_keyword_escape(self):
        with pytest.raises(DuplicateDeclaration):
            _reduce("message A { int32 default = 1; int32 default_ = 2; }")

    def test_distinct_accessors_accepted(self):
        model = _reduce("message A { int32 foo_bar = 1; int32 foobar = 2; int32 foo_bar_2 = 3; }")
        assert [f.name for f in model.types[0].fields] == ["foo_bar", "foobar", "foo_bar_2"]

    def test_same_field_name_in_different_messages(self):
        model = _reduce("message A { int32 id = 1; } message B { int32 id = 1; }")
        assert len(model.types) == 2

    def test_second_package_statement(self):
        with pytest.raises(DuplicateDeclaration) as exc_info:
            _reduce("package a;\npackage b;\n")
        assert exc_info.value.identifier == "package"
        assert exc_info.value.line == 2


class TestStringLiterals:
    def test_bad_escape_in_option(self):
        with pytest.raises(InvalidStringLiteral) as exc_info:
            _reduce('option java_package = "com\\xZZ";')
        err = exc_info.value
        assert err.span == "\\x"
        assert err.line == 1
        assert err.column == len("option java_package = ") + 1

    def test_bad_escape_in_field_option(self):
        with pytest.raises(InvalidStringLiteral):
            _reduce('message A { string s = 1 [json_name = "\\q"]; }')

    def test_bad_escape_in_reserved_name(self):
        with pytest.raises(InvalidStringLiteral):
            _reduce('message A { reserved "\\u12"; }')

    def test_bad_escape_in_import(self):
        with pytest.raises(InvalidStringLiteral):
            _reduce('import "\\400.proto";')

    def test_valid_escapes_accepted(self):
        model = _reduce('option note = "\\x41\\101\\u0041\\n"; message A {}')
        assert [t.name for t in model.types] == ["A"]


class TestSyntaxStatement:
    def test_proto3_accepted(self):
        model = _reduce('syntax = "proto3";')
        assert model == ProtoModel()

    def test_escaped_proto3_accepted(self):
        model = _reduce('syntax = "proto\\063";')
        assert model == ProtoModel()

    def test_proto2_rejected(self):
        with pytest.raises(UnsupportedSyntax) as exc_info:
            _reduce('syntax = "proto2";\nmessage A {}')
        assert "proto2" in str(exc_info.value)


class TestMalformedTrees:
    def test_wrong_root(self):
        with pytest.raises(MalformedTreeError):
            reduce_tree(Tree("message_block", []))

    def test_unknown_top_level_node(self):
        with pytest.raises(MalformedTreeError):
            reduce_tree(Tree("proto", [Tree("service_block", [])]))

    def test_message_without_name(self):
        with pytest.raises(MalformedTreeError):
            reduce_tree(Tree("proto", [Tree("message_block", [Tree("message_body", [])])]))
