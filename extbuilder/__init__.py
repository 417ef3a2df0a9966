"""Build the Microsoft Fabric MCP Server into a desktop extension package."""
from __future__ import annotations

from .cli import main
from .errors import BuildCancelled, ExtensionBuildError
from .pipeline import ExtensionPipeline, PipelineResult

__all__ = ["BuildCancelled", "ExtensionBuildError", "ExtensionPipeline", "PipelineResult", "main"]
