"""
Architecture boundary tests — enforce clean architecture layer dependencies.

Allowed dependency direction:
  domain/         → stdlib + pydantic only (no application, infrastructure, api, config)
  application/    → domain, infrastructure, logging_config
  infrastructure/ → domain, logging_config (NOT application, api)
  api/            → application, domain, api, logging_config (NOT infrastructure)
"""

import ast
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).parent.parent

LAYER_RULES = {
    "domain": {
        "forbidden": ["application", "infrastructure", "api", "config", "logging_config"],
        "note": "Domain must not depend on any outer layer",
    },
    "infrastructure": {
        "forbidden": ["application", "api"],
        "note": "Infrastructure must not depend on application or api",
    },
    "application": {
        "forbidden": ["api"],
        "note": "Application must not depend on the HTTP layer",
    },
    "api": {
        "forbidden": ["infrastructure"],
        "note": "API routes reach upstream data only through application services",
    },
}


def _collect_imports(filepath: Path) -> list[str]:
    """Parse a Python file and return all imported module names."""
    source = filepath.read_text(encoding="utf-8")
    tree = ast.parse(source)
    imports: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            imports.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            imports.append(node.module)
    return imports


def _get_python_files(layer_dir: Path) -> list[Path]:
    if not layer_dir.exists():
        return []
    return sorted(layer_dir.rglob("*.py"))


def _violations(layer: str) -> list[str]:
    forbidden = LAYER_RULES[layer]["forbidden"]
    return [
        f"{filepath.relative_to(BACKEND_ROOT)}: imports {imp}"
        for filepath in _get_python_files(BACKEND_ROOT / layer)
        for imp in _collect_imports(filepath)
        for name in forbidden
        if imp == name or imp.startswith(f"{name}.")
    ]


@pytest.mark.parametrize("layer", sorted(LAYER_RULES))
def test_layer_has_no_forbidden_imports(layer):
    violations = _violations(layer)
    assert violations == [], (
        f"{layer} layer violations ({LAYER_RULES[layer]['note']}):\n"
        + "\n".join(violations)
    )


def test_every_layer_has_source_files():
    for layer in LAYER_RULES:
        assert _get_python_files(BACKEND_ROOT / layer), f"{layer}/ has no modules"
