"""
Prompt and digest templates.

Templates live in foundry/prompts/ and are rendered with Jinja2:
- task.j2: prompt handed to the coding agent
- summary.j2: prompt for the summarizer
- clean_digest.md.j2: condensed run record written next to the run log
"""
from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..config import PROMPTS_DIR
from .project_fs import ContextDirs

# select_autoescape only escapes HTML/XML templates; these are plain text.
_jinja_env = Environment(
    loader=FileSystemLoader(PROMPTS_DIR),
    trim_blocks=True,
    lstrip_blocks=True,
    autoescape=select_autoescape(),
    keep_trailing_newline=True,
)


def render_task_prompt(cwd: str, description: str, context: ContextDirs) -> str:
    """Prompt text for a task run; embeds cwd and the containment rule."""
    return _jinja_env.get_template("task.j2").render(
        cwd=cwd,
        description=description,
        context=context,
    ).rstrip("\n")


def render_summary_prompt(cwd: str, description: str, digest: str) -> str:
    return _jinja_env.get_template("summary.j2").render(
        cwd=cwd,
        description=description,
        digest=digest,
    )


def render_clean_digest(
    description: str,
    context: ContextDirs,
    remarks: list[str],
    file_writes: list[str],
    summary: str,
) -> str:
    return _jinja_env.get_template("clean_digest.md.j2").render(
        description=description,
        context=context,
        remarks=remarks,
        file_writes=file_writes,
        summary=summary,
    )
