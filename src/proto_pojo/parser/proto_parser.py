from __future__ import annotations

from pathlib import Path

from proto_pojo.models import ProtoModel
from proto_pojo.parser.proto_reducer import reduce_tree
from proto_pojo.parser.proto_tree_parser import parse


def parse_proto(text: str) -> ProtoModel:
    """Parse proto3 source text into a ProtoModel."""
    return reduce_tree(parse(text))


def parse_proto_file(file_path: str) -> ProtoModel:
    """Parse a .proto file and return its ProtoModel."""
    text = Path(file_path).read_text(encoding="utf-8")
    return parse_proto(text)
