"""Error handling framework for convoy."""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class ExitCode(IntEnum):
    """convoy CLI exit codes."""

    SUCCESS = 0
    CONFIG_ERROR = 1  # Configuration error (user fixable)
    BUILD_ERROR = 2  # A target failed to build
    FATAL_ERROR = 3  # Unexpected crash


class ConvoyError(Exception):
    """Base exception for convoy errors."""

    exit_code: ExitCode = ExitCode.FATAL_ERROR

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON output."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "exit_code": self.exit_code,
            **self.context,
        }


class ConfigError(ConvoyError):
    """Configuration-related errors, raised before any I/O."""

    exit_code = ExitCode.CONFIG_ERROR


class ResolutionError(ConvoyError):
    """A module id or dependency path could not be mapped to a file."""

    exit_code = ExitCode.BUILD_ERROR


class UnresolvedModuleError(ResolutionError):
    """No file matches a module id."""

    def __init__(self, module_id: str, context: str | None = None) -> None:
        message = f"Cannot find module '{module_id}'"
        if context:
            message += f" ({context})"
        super().__init__(message, module_id=module_id, required_in=context)
        self.module_id = module_id
        self.error_context = context

    def with_context(self, context: str) -> UnresolvedModuleError:
        """Return a copy of this error naming the requiring asset."""
        return UnresolvedModuleError(self.module_id, context)


class DependencyNotFoundError(ResolutionError):
    """A declared dependency did not yield a compiled asset."""

    def __init__(self, path: str, required_by: str) -> None:
        super().__init__(
            f"{path} not found (required in {required_by})",
            path=path,
            required_by=required_by,
        )
        self.path = path
        self.required_by = required_by


class AssetNotFoundError(ConvoyError):
    """A source file is missing, or is a directory where a file was expected."""

    exit_code = ExitCode.BUILD_ERROR

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message, path=path)
        self.path = path


class NoCompilerError(ConvoyError):
    """No compiler is registered for a file extension."""

    exit_code = ExitCode.BUILD_ERROR

    def __init__(self, path: str, extension: str) -> None:
        super().__init__(f"No compiler for {path}", path=path, extension=extension)
        self.path = path
        self.extension = extension


class CompileError(ConvoyError):
    """A compiler or preprocessor failed."""

    exit_code = ExitCode.BUILD_ERROR

    def __init__(self, message: str, path: str, **context: Any) -> None:
        super().__init__(message, path=path, **context)
        self.path = path


class MinifyError(ConvoyError):
    """The minifier rejected the merged output."""

    exit_code = ExitCode.BUILD_ERROR


class WriteError(ConvoyError):
    """A built output could not be written."""

    exit_code = ExitCode.BUILD_ERROR

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message, path=path)
        self.path = path


class PathNotFoundError(ConvoyError):
    """No target in the pipeline can generate an output path."""

    exit_code = ExitCode.BUILD_ERROR

    def __init__(self, path: str) -> None:
        super().__init__(f"asset not found for {path}", path=path)
        self.path = path


class BuildResult:
    """Outcome of writing a batch of output paths."""

    def __init__(self) -> None:
        self.written: list[str] = []
        self.errors: list[ConvoyError] = []

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def exit_code(self) -> ExitCode:
        """Determine exit code based on results."""
        if not self.errors:
            return ExitCode.SUCCESS
        if any(e.exit_code == ExitCode.CONFIG_ERROR for e in self.errors):
            return ExitCode.CONFIG_ERROR
        if any(e.exit_code == ExitCode.FATAL_ERROR for e in self.errors):
            return ExitCode.FATAL_ERROR
        return ExitCode.BUILD_ERROR

    def add_written(self, path: str) -> None:
        self.written.append(path)

    def add_error(self, error: ConvoyError) -> None:
        self.errors.append(error)

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for JSON output."""
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "written": self.written,
            "errors": [e.to_dict() for e in self.errors],
        }
