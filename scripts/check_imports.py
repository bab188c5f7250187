#!/usr/bin/env python3
"""
Static analyzer to enforce the layer boundaries of campaign_brain.

    core/          talks to collaborators only through core/interfaces.py;
                   may not import adapters or the outer surfaces
    integrations/  adapters; may import core but not the outer surfaces

service, cli and config sit on top and may import anything.
"""

import ast
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

PACKAGE = "campaign_brain"

OUTER = ("service", "cli", "config")

# layer directory -> sibling modules it must not reach
LAYER_RULES: Dict[str, Tuple[str, ...]] = {
    "core": ("integrations",) + OUTER,
    "integrations": OUTER,
}

Violation = Tuple[str, int, str]


class ImportViolationChecker(ast.NodeVisitor):
    """Collects imports of forbidden sibling modules from one source file."""

    def __init__(self, file_path: str, forbidden: Iterable[str] = LAYER_RULES["core"]):
        self.file_path = file_path
        self.forbidden = tuple(forbidden)
        self.violations: List[Tuple[int, str]] = []

    def _is_forbidden_import(self, module_name: str, level: int = 0) -> bool:
        if level == 1:
            # same-layer import
            return False
        if level >= 2:
            target = module_name.split(".")[0]
        else:
            parts = module_name.split(".")
            if len(parts) < 2 or parts[0] != PACKAGE:
                return False
            target = parts[1]
        return target in self.forbidden

    def _flag(self, lineno: int, statement: str) -> None:
        self.violations.append((lineno, f"Forbidden import: {statement}"))

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            if self._is_forbidden_import(alias.name):
                self._flag(node.lineno, f"import {alias.name}")
        self.generic_visit(node)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        module = node.module or ""
        prefix = "." * node.level
        names = ", ".join(alias.name for alias in node.names)
        if module:
            if self._is_forbidden_import(module, node.level):
                self._flag(node.lineno, f"from {prefix}{module} import {names}")
        else:
            # from .. import integrations
            for alias in node.names:
                if self._is_forbidden_import(alias.name, node.level):
                    self._flag(node.lineno, f"from {prefix} import {alias.name}")
        self.generic_visit(node)


def check_layer(root_path: Path, layer: str) -> List[Violation]:
    violations: List[Violation] = []
    layer_path = root_path / PACKAGE / layer

    if not layer_path.exists():
        print(f"Warning: {layer} path {layer_path} does not exist")
        return violations

    for py_file in sorted(layer_path.rglob("*.py")):
        try:
            source = py_file.read_text(encoding="utf-8")
            tree = ast.parse(source, filename=str(py_file))
        except SyntaxError as e:
            violations.append((str(py_file), e.lineno or 0, f"Syntax error: {e}"))
            continue
        except Exception as e:
            violations.append((str(py_file), 0, f"Error processing file: {e}"))
            continue

        checker = ImportViolationChecker(str(py_file), LAYER_RULES[layer])
        checker.visit(tree)
        violations.extend((str(py_file), line_no, msg) for line_no, msg in checker.violations)

    return violations


def check_core_imports(root_path: Path) -> List[Violation]:
    """Violations in campaign_brain/core as (file_path, line_number, message)."""
    return check_layer(root_path, "core")


def check_all_layers(root_path: Path) -> List[Violation]:
    violations: List[Violation] = []
    for layer in LAYER_RULES:
        violations.extend(check_layer(root_path, layer))
    return violations


def main() -> int:
    root_path = Path(__file__).parent.parent
    violations = check_all_layers(root_path)

    if not violations:
        print("✅ Layer boundaries hold - no cross-layer imports found")
        return 0

    print("❌ Cross-layer import violations found:\n")
    for file_path, line_no, message in violations:
        rel_path = Path(file_path).relative_to(root_path)
        print(f"  {rel_path}:{line_no} - {message}")

    print(f"\nTotal violations: {len(violations)}\n")
    for layer, forbidden in LAYER_RULES.items():
        print(f"{PACKAGE}/{layer} must not import: {', '.join(forbidden)}")

    return 1


if __name__ == "__main__":
    sys.exit(main())
