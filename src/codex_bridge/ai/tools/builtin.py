"""Built-in tools backed by the agent's own file, shell and network access."""

from __future__ import annotations

from codex_bridge.ai.tools.base import ToolDefinition


def _schema(properties: dict, required: list[str] | None = None) -> dict:
    return {"type": "object", "properties": properties, "required": required or []}


def _str(description: str) -> dict:
    return {"type": "string", "description": description}


BUILTIN_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="read_file",
        description="Read the contents of a file",
        parameters=_schema(
            {"path": _str("The path to the file to read (relative or absolute)")},
            ["path"],
        ),
    ),
    ToolDefinition(
        name="write_file",
        description="Write content to a file (creates or overwrites)",
        parameters=_schema(
            {
                "path": _str("The path to the file to write"),
                "content": _str("The content to write to the file"),
            },
            ["path", "content"],
        ),
    ),
    ToolDefinition(
        name="edit_file",
        description="Edit a file by replacing text",
        parameters=_schema(
            {
                "path": _str("The path to the file to edit"),
                "old_text": _str("The text to replace"),
                "new_text": _str("The new text"),
            },
            ["path", "old_text", "new_text"],
        ),
    ),
    ToolDefinition(
        name="run_command",
        description="Execute a bash/shell command",
        parameters=_schema(
            {
                "command": _str("The command to execute"),
                "cwd": _str("Working directory for the command (optional)"),
            },
            ["command"],
        ),
    ),
    ToolDefinition(
        name="list_directory",
        description="List contents of a directory",
        parameters=_schema(
            {
                "path": _str("The directory path to list (defaults to current directory)"),
                "recursive": {"type": "boolean", "description": "Whether to list recursively"},
            }
        ),
    ),
    ToolDefinition(
        name="search_files",
        description="Search for files by name pattern (glob)",
        parameters=_schema(
            {
                "pattern": _str('Glob pattern (e.g., "*.ts", "**/*.json")'),
                "path": _str("Directory to search in (optional)"),
            },
            ["pattern"],
        ),
    ),
    ToolDefinition(
        name="search_in_files",
        description="Search for text within files (grep)",
        parameters=_schema(
            {
                "pattern": _str("Text or regex pattern to search for"),
                "path": _str("File or directory to search in (optional)"),
                "file_pattern": _str('File pattern to filter (e.g., "*.ts")'),
            },
            ["pattern"],
        ),
    ),
    # Network tools rely on the backend running with network access
    ToolDefinition(
        name="web_search",
        description="Search the web for information",
        parameters=_schema(
            {
                "query": _str("Search query"),
                "num_results": {
                    "type": "number",
                    "description": "Number of results to return (default: 5)",
                },
            },
            ["query"],
        ),
    ),
    ToolDefinition(
        name="fetch_url",
        description="Fetch content from a URL",
        parameters=_schema(
            {
                "url": _str("URL to fetch"),
                "method": {
                    "type": "string",
                    "description": "HTTP method (GET, POST, etc.)",
                    "enum": ["GET", "POST", "PUT", "DELETE", "PATCH"],
                },
                "headers": {"type": "object", "description": "HTTP headers (optional)"},
                "body": _str("Request body (optional)"),
            },
            ["url"],
        ),
    ),
)
