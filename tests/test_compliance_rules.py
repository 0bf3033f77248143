import ast
from pathlib import Path

TESTS_ROOT = Path(__file__).resolve().parent

SESSION_FIXTURE_NAMES = {"db_session"}

FORBIDDEN_SESSION_METHODS = {
    "add",
    "add_all",
    "commit",
    "delete",
    "execute",
    "flush",
    "get",
    "merge",
    "query",
    "refresh",
    "rollback",
    "scalar",
    "scalars",
}


def _test_modules() -> list[Path]:
    return sorted(
        path
        for path in TESTS_ROOT.rglob("test_*.py")
        if "helpers" not in path.relative_to(TESTS_ROOT).parts and path != Path(__file__).resolve()
    )


def _test_functions(tree: ast.Module) -> list[ast.FunctionDef]:
    functions: list[ast.FunctionDef] = []
    for node in tree.body:
        if isinstance(node, ast.FunctionDef) and node.name.startswith("test_"):
            functions.append(node)
        elif isinstance(node, ast.ClassDef):
            functions.extend(
                child
                for child in node.body
                if isinstance(child, ast.FunctionDef) and child.name.startswith("test_")
            )
    return functions


def _session_calls(function: ast.FunctionDef) -> list[tuple[str, int]]:
    calls: list[tuple[str, int]] = []
    for node in ast.walk(function):
        if not isinstance(node, ast.Call) or not isinstance(node.func, ast.Attribute):
            continue
        target = node.func.value
        if (
            isinstance(target, ast.Name)
            and target.id in SESSION_FIXTURE_NAMES
            and node.func.attr in FORBIDDEN_SESSION_METHODS
        ):
            calls.append((node.func.attr, node.lineno))
    return calls


def test_tests_reach_the_database_through_factories_only():
    """
    Validate test functions never drive the session directly.

    1. Collect every test module outside the helpers package.
    2. Parse each module and walk the body of each test function.
    3. Record any session method call made on the db_session fixture.
    4. Validate nothing was recorded and list the offending lines otherwise.
    """
    errors: list[str] = []
    for module in _test_modules():
        tree = ast.parse(module.read_text(encoding="utf-8"))
        for function in _test_functions(tree):
            for method, line in _session_calls(function):
                errors.append(f"{module.relative_to(TESTS_ROOT)}:{line} {function.name} calls db_session.{method}()")
    assert not errors, "Use tests/helpers/factories.py instead of the session:\n" + "\n".join(errors)
