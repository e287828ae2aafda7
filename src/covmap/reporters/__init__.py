"""Reporters for coverage results: terminal, JSON, annotations, PR comments."""

from covmap.reporters.annotations import (
    AnnotationLevel,
    CheckAnnotation,
    format_workflow_command,
    generate_annotations,
)
from covmap.reporters.github_comment import (
    CommentData,
    GitHubCommentReporter,
    create_comment_data,
    render_comment_body,
)
from covmap.reporters.json_reporter import JSONReporter

__all__ = [
    "AnnotationLevel",
    "CheckAnnotation",
    "CommentData",
    "GitHubCommentReporter",
    "JSONReporter",
    "create_comment_data",
    "format_workflow_command",
    "generate_annotations",
    "render_comment_body",
]
