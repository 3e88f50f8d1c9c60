"""
Fix Prompts
===========
Builds the prompt handed to `claude -p` for one PR.

Prompt sections (in order, empty ones omitted):
    - Project structure
    - Project documentation (CLAUDE.md / AGENTS.md / README.md)
    - Bugs to fix (severity, title, location, description)
    - PR diff (truncated)
    - Current contents of changed files
    - Related files imported by the bug files
    - Instructions

Prompt Design Rules:
    - Explore before editing
    - Do not create new files
    - Stay on the files named in the bug reports
    - Follow existing style
    - No commit messages; the daemon commits
"""
from typing import Dict, List, Optional

from autofix.models.bug_report import BugReport

MAX_DIFF_SIZE = 100_000

INTRO = "You are fixing bugs reported by Cursor Bugbot in this codebase."

INSTRUCTIONS = (
    "## Instructions\n\n"
    "Before making changes, use the available tools (Read, grep, find, ls, tree) to explore the "
    "codebase and understand how the target files interact with the rest of the project.\n\n"
    "Fix the identified bugs by making correct, targeted changes. Follow these rules:\n"
    "- Do NOT create new files. Only modify existing files.\n"
    "- Focus changes on the files mentioned in the bug reports. Only modify other files if strictly "
    "necessary for the fix.\n"
    "- Follow the existing code style, naming conventions, and patterns in the project.\n"
    "- Ensure your changes are compatible with the rest of the codebase.\n"
    "- Commit messages are not needed - just make the file changes."
)


def format_location(bug: BugReport) -> str:
    location = bug.file_path
    if bug.start_line:
        location += f"#L{bug.start_line}"
    if bug.end_line:
        location += f"-L{bug.end_line}"
    return location


def format_bug_list(bugs: List[BugReport]) -> str:
    return "\n\n".join(
        f"{idx}. [{bug.severity.value.upper()}] {bug.title}\n"
        f"   File: {format_location(bug)}\n"
        f"   Description: {bug.description}"
        for idx, bug in enumerate(bugs, start=1)
    )


def _format_files(files: Dict[str, str]) -> str:
    return "\n\n".join(f"--- {path} ---\n{content}" for path, content in files.items())


def build_fix_prompt(
    bugs: List[BugReport],
    pr_diff: str = "",
    changed_files: Optional[Dict[str, str]] = None,
    project_structure: str = "",
    project_docs: str = "",
    related_files: Optional[Dict[str, str]] = None,
) -> str:
    sections = [INTRO]

    if project_structure:
        sections.append(f"## Project structure\n\n```\n{project_structure}\n```")

    if project_docs:
        sections.append(f"## Project documentation\n\n{project_docs}")

    sections.append(f"## Bugs to fix\n\n{format_bug_list(bugs)}")

    if pr_diff:
        if len(pr_diff) > MAX_DIFF_SIZE:
            pr_diff = pr_diff[:MAX_DIFF_SIZE] + "\n... (diff truncated)"
        sections.append(f"## PR diff\n\n```diff\n{pr_diff}\n```")

    if changed_files:
        sections.append(f"## Current contents of changed files\n\n{_format_files(changed_files)}")

    if related_files:
        sections.append(f"## Related files (dependencies of bug files)\n\n{_format_files(related_files)}")

    sections.append(INSTRUCTIONS)
    return "\n\n".join(sections)
