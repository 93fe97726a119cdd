"""Pydantic models for parsed source units."""

from pydantic import BaseModel, ConfigDict, Field

from testsmith.constants import ReturnCategory


class OperationInfo(BaseModel):
    """One callable member of a source unit."""

    model_config = ConfigDict(frozen=True)

    name: str
    return_category: ReturnCategory = ReturnCategory.UNKNOWN
    return_type: str | None = None
    error_types: tuple[str, ...] = ()
    parameters: tuple[str, ...] = ()
    start_line: int = 0
    end_line: int = 0
    owner: str | None = None  # enclosing class, None for free functions
    is_constructor: bool = False
    is_static: bool = False
    is_accessor: bool = False
    is_overridden: bool = False

    @property
    def signature(self) -> str:
        params = ", ".join(self.parameters)
        ret = f" -> {self.return_type}" if self.return_type else ""
        return f"{self.name}({params}){ret}"


class StructuralSummary(BaseModel):
    """Immutable, language-agnostic description of one source unit."""

    model_config = ConfigDict(frozen=True)

    qualified_name: str
    language: str
    operations: tuple[OperationInfo, ...] = Field(default=())
    source_path: str | None = None  # set by the caller that read the file

    @property
    def operation_names(self) -> list[str]:
        return [op.name for op in self.operations]

    def find(self, name: str) -> OperationInfo | None:
        for op in self.operations:
            if op.name == name:
                return op
        return None
