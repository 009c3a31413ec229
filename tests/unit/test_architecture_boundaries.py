import ast
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]


def _ui_imports(package_dir: Path):
    violations = []
    for py_file in package_dir.rglob("*.py"):
        tree = ast.parse(py_file.read_text(encoding="utf-8"), filename=str(py_file))
        rel_path = py_file.relative_to(REPO_ROOT)
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                for alias in node.names:
                    if alias.name == "mcv.ui" or alias.name.startswith("mcv.ui."):
                        violations.append(f"{rel_path}:{node.lineno} imports {alias.name}")
            elif isinstance(node, ast.ImportFrom):
                module = node.module or ""
                if module == "mcv.ui" or module.startswith("mcv.ui."):
                    violations.append(f"{rel_path}:{node.lineno} imports from {module}")
    return violations


@pytest.mark.parametrize("layer", ["domain", "formats", "infrastructure", "pipeline"])
def test_core_layers_do_not_import_ui_layer(layer):
    """Only main.py wires the UI; core layers publish events instead."""
    violations = _ui_imports(REPO_ROOT / "mcv" / layer)
    assert not violations, f"{layer} layer must not import UI layer:\n" + "\n".join(violations)


def test_domain_has_no_infrastructure_imports():
    domain_dir = REPO_ROOT / "mcv" / "domain"
    for py_file in domain_dir.rglob("*.py"):
        source = py_file.read_text(encoding="utf-8")
        assert "mcv.infrastructure" not in source, py_file.name
        assert "subprocess" not in source, py_file.name
