"""Tests for tree-sitter structural summaries."""

from __future__ import annotations

import pytest

from testsmith.constants import ReturnCategory
from testsmith.parsing.tree_sitter_parser import (
    TreeSitterSourceParser,
    categorize_return,
)
from testsmith.resilience.errors import ParseFailure


class TestPythonSummary:
    def test_functions_and_methods(self, python_source: str) -> None:
        summary = TreeSitterSourceParser("python").parse(
            python_source, unit_name="calc.ops"
        )
        assert summary.qualified_name == "calc.ops"
        assert summary.language == "python"
        assert summary.operation_names == ["add", "divide", "__init__", "push"]

    def test_operation_details(self, python_source: str) -> None:
        summary = TreeSitterSourceParser("python").parse(
            python_source, unit_name="calc.ops"
        )
        divide = summary.find("divide")
        assert divide is not None
        assert divide.return_category is ReturnCategory.PRIMITIVE
        assert divide.error_types == ("ZeroDivisionError",)
        assert divide.parameters == ("a: float", "b: float")
        assert divide.owner is None
        assert divide.start_line == 8

        init = summary.find("__init__")
        assert init is not None
        assert init.is_constructor
        assert init.owner == "Accumulator"
        assert init.return_category is ReturnCategory.VOID

        push = summary.find("push")
        assert push is not None
        assert push.parameters == ("value: int",)

    def test_decorators(self) -> None:
        source = (
            "class Box:\n"
            "    @property\n"
            "    def size(self) -> int:\n"
            "        return 1\n"
            "\n"
            "    @staticmethod\n"
            "    def make() -> 'Box':\n"
            "        return Box()\n"
        )
        summary = TreeSitterSourceParser().parse(source, unit_name="box")
        size, make = summary.operations
        assert size.is_accessor
        assert not size.is_static
        assert make.is_static
        assert make.return_category is ReturnCategory.OBJECT

    def test_empty_module(self) -> None:
        summary = TreeSitterSourceParser().parse("", unit_name="empty")
        assert summary.operations == ()

    def test_syntax_error_raises_parse_failure(self) -> None:
        with pytest.raises(ParseFailure, match="syntax error in broken"):
            TreeSitterSourceParser().parse(
                "def broken(:\n    pass\n", unit_name="broken"
            )


class TestJavaSummary:
    def test_class_members(self, java_source: str) -> None:
        summary = TreeSitterSourceParser("java").parse(java_source)
        assert summary.qualified_name == "com.example.util.Inventory"
        assert summary.operation_names == [
            "Inventory",
            "count",
            "first",
            "clear",
            "isEmpty",
        ]

    def test_return_categories(self, java_source: str) -> None:
        summary = TreeSitterSourceParser("java").parse(java_source)
        by_name = {op.name: op for op in summary.operations}
        assert by_name["Inventory"].is_constructor
        assert by_name["count"].return_category is ReturnCategory.PRIMITIVE
        assert by_name["first"].return_category is ReturnCategory.OPTIONAL
        assert by_name["clear"].return_category is ReturnCategory.VOID
        assert by_name["isEmpty"].is_accessor

    def test_declared_and_thrown_errors(self) -> None:
        source = (
            "class Gate {\n"
            "    @Override\n"
            "    public static void open(int code) throws java.io.IOException {\n"
            "        if (code < 0) throw new IllegalArgumentException(\"neg\");\n"
            "    }\n"
            "}\n"
        )
        op = TreeSitterSourceParser("java").parse(source).operations[0]
        assert op.error_types == ("IOException", "IllegalArgumentException")
        assert op.is_static
        assert op.is_overridden

    def test_enum_methods_and_constructor(self) -> None:
        source = (
            "enum Level {\n"
            "    LOW(1), HIGH(9);\n"
            "    private final int weight;\n"
            "    Level(int weight) { this.weight = weight; }\n"
            "    public int weight() { return weight; }\n"
            "    public static Level parse(String s) { return valueOf(s); }\n"
            "}\n"
        )
        summary = TreeSitterSourceParser("java").parse(source)
        assert summary.operation_names == ["Level", "weight", "parse"]
        assert summary.operations[0].is_constructor
        assert summary.operations[2].is_static
        assert summary.operations[2].owner == "Level"

    def test_unit_name_overrides_package(self, java_source: str) -> None:
        summary = TreeSitterSourceParser("java").parse(
            java_source, unit_name="custom.Name"
        )
        assert summary.qualified_name == "custom.Name"


class TestCategorizeReturn:
    @pytest.mark.parametrize(
        ("text", "language", "expected"),
        [
            (None, "python", ReturnCategory.UNKNOWN),
            ("None", "python", ReturnCategory.VOID),
            ("str | None", "python", ReturnCategory.OPTIONAL),
            ("Optional[int]", "python", ReturnCategory.OPTIONAL),
            ("list[str]", "python", ReturnCategory.COLLECTION),
            ("bool", "python", ReturnCategory.PRIMITIVE),
            ("Path", "python", ReturnCategory.OBJECT),
            ("void", "java", ReturnCategory.VOID),
            ("Map<String, Integer>", "java", ReturnCategory.COLLECTION),
            ("byte[]", "java", ReturnCategory.COLLECTION),
            ("Optional<User>", "java", ReturnCategory.OPTIONAL),
            ("User", "java", ReturnCategory.OBJECT),
        ],
    )
    def test_categories(
        self, text: str | None, language: str, expected: ReturnCategory
    ) -> None:
        assert categorize_return(text, language) is expected


def test_unsupported_language_rejected() -> None:
    with pytest.raises(ValueError, match="unsupported language"):
        TreeSitterSourceParser("cobol")
