from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from proto_pojo.errors import ProtoPojoError
from proto_pojo.generator.java_pojo_generator import render
from proto_pojo.parser.proto_parser import parse_proto, parse_proto_file


def _find_files(working_path: str, extensions: List[str]) -> List[str]:
    """Recursively find files with given extensions under working_path.

    A path that is itself a file is returned as the only result.
    """
    path = Path(working_path)
    if path.is_file():
        return [str(path)]
    results = []
    for ext in extensions:
        results.extend(str(p) for p in path.rglob(f"*{ext}"))
    return sorted(results)


def _default_output_dir(working_path: str) -> str:
    path = Path(working_path)
    base = path.parent if path.is_file() else path
    return str(base / "java")


def convert(text: str, java_package: Optional[str] = None) -> List[Tuple[str, str]]:
    """Convert proto3 source text into (relative path, Java source) pairs."""
    return render(parse_proto(text), java_package)


def run(
    working_path: str,
    output_dir: Optional[str] = None,
    java_package: Optional[str] = None,
) -> List[str]:
    """Main pipeline: find, parse, generate, write.

    Returns the list of written file paths.
    """
    # 1. Find input files
    proto_files = _find_files(working_path, [".proto"])
    if not proto_files:
        print(f"No .proto files found under {working_path}")
        sys.exit(1)

    print(f"Found {len(proto_files)} proto file(s)")

    out_root = Path(output_dir or _default_output_dir(working_path))

    # 2. Parse and render everything before touching the output directory
    rendered: Dict[str, Tuple[str, str]] = {}
    for pf in proto_files:
        try:
            model = parse_proto_file(pf)
        except ProtoPojoError as e:
            print(f"FATAL: {pf}: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"  Parsed {pf}: {len(model.types)} type(s)")

        for rel_path, source in render(model, java_package):
            if rel_path in rendered:
                print(
                    f"FATAL: {pf}: {rel_path} is also generated from {rendered[rel_path][0]}",
                    file=sys.stderr,
                )
                sys.exit(1)
            rendered[rel_path] = (pf, source)

    # 3. Write Java sources
    generated: List[str] = []
    for rel_path, (_, source) in rendered.items():
        file_path = out_root / rel_path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(source, encoding="utf-8")
        generated.append(str(file_path))
        print(f"  Generated POJO: {file_path}")

    print("Done!")
    return generated


def main():
    parser = argparse.ArgumentParser(
        description="Generate Java POJOs from proto3 files",
    )
    parser.add_argument(
        "--working-path",
        required=True,
        help="A .proto file, or a directory to scan for .proto files",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for generated sources (default: <working-path>/java)",
    )
    parser.add_argument(
        "--java-package",
        default=None,
        help="Java package for generated code (default: the proto package)",
    )

    args = parser.parse_args()
    run(args.working_path, args.output_dir, args.java_package)


if __name__ == "__main__":
    main()
