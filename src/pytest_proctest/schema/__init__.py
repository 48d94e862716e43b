"""Document tree, testable actions, requirements and results.

Defines immutable Pydantic models describing parsed procedures, the
actions extracted from them, the requirements gating them, and the
results of running them. The module specifies the structural contract
shared by the parser, the variant expansion engine, the orchestrator
and reporters.
"""

from .actions import (
    ACTION_TYPES,
    ActionType,
    ApiAction,
    BaseAction,
    CliAction,
    CodeAction,
    DownloadAction,
    FileAction,
    ShellAction,
    TestableAction,
    UiAction,
    UrlAction,
)
from .locations import SourceLocation
from .nodes import (
    CodeBlockNode,
    ComposableTutorialNode,
    ContentNode,
    DocumentAST,
    ParagraphNode,
    ProcedureNode,
    ProcedureVariant,
    Reference,
    SelectedContentNode,
    StepNode,
    SubStepNode,
    TabNode,
    TabsNode,
)
from .prerequisites import (
    ConfigurationRequirement,
    EnvironmentRequirement,
    PrerequisiteNode,
    Requirement,
    ServiceRequirement,
    SoftwareRequirement,
)
from .results import (
    ActionResult,
    CleanupResult,
    ErrorDetails,
    ExecutionResult,
    PrerequisiteCheckResult,
    ProcedureResult,
    RunSummary,
    StepResult,
    SubStepResult,
    ValidationResult,
)

__all__ = (
    'ACTION_TYPES',
    'ActionResult',
    'ActionType',
    'ApiAction',
    'BaseAction',
    'CleanupResult',
    'CliAction',
    'CodeAction',
    'CodeBlockNode',
    'ComposableTutorialNode',
    'ConfigurationRequirement',
    'ContentNode',
    'DocumentAST',
    'DownloadAction',
    'EnvironmentRequirement',
    'ErrorDetails',
    'ExecutionResult',
    'FileAction',
    'ParagraphNode',
    'PrerequisiteCheckResult',
    'PrerequisiteNode',
    'ProcedureNode',
    'ProcedureResult',
    'ProcedureVariant',
    'Reference',
    'Requirement',
    'RunSummary',
    'SelectedContentNode',
    'ServiceRequirement',
    'ShellAction',
    'SoftwareRequirement',
    'SourceLocation',
    'StepNode',
    'StepResult',
    'SubStepNode',
    'SubStepResult',
    'TabNode',
    'TabsNode',
    'TestableAction',
    'UiAction',
    'UrlAction',
    'ValidationResult',
)
