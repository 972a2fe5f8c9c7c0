"""
Centralized prompt templates for Brainpipe.

All extraction prompts are defined here to make prompt engineering easier
and to keep the first request, the corrective retry and the health check
consistent with each other.
"""

# =============================================================================
# Task Extraction Prompts
# =============================================================================

TASK_EXTRACTION_SYSTEM_PROMPT = """Extract actionable tasks from timestamped braindump notes. Return only JSON.

<source_format>
Daily markdown files (YYYY-MM-DD.md) with timestamped entries:
## HH:MM:SS
- Random thoughts, todos, feelings, reminders, etc.
</source_format>

<what_to_extract>
Extract only actionable items:
- Tasks, todos, action items, reminders with action required
- Ignore: completed tasks, thoughts, feelings, observations
- Preserve context and proper names
- Use imperative titles
- Current year: {year}
</what_to_extract>

<due_date_rules>
- Resolve relative dates ("tomorrow", "Friday", "end of month") against the current date
- Format: "YYYY-MM-DD"
- Use null when no date is mentioned
</due_date_rules>

<return_format>
{{
  "tasks": [
    {{
      "title": "string",
      "due": "YYYY-MM-DD" | null,
      "tags": ["string"] | null
    }}
  ]
}}
</return_format>
"""


TASK_EXTRACTION_USER_PROMPT = """Extract from braindump{chunk_info}:

<braindump>
{content}
</braindump>

<current_datetime>
Important: Use this for reference when extracting due dates.
Date: {date}
Time: {time}
</current_datetime>

<examples>
Extract actionable tasks like:
✓ - [ ] Buy milk
✓ - call John tomorrow at 2pm
✓ TODO: send invoice due:16/08
✓ remind Sarah about meeting at 10:30
✓ need to review proposal by end of day

Ignore non-actionable:
✗ - [x] completed tasks
✗ feeling tired today
✗ random observation
</examples>

JSON only:"""


# Corrective retry after an unparsable reply
TASK_EXTRACTION_STRICT_PROMPT = """The previous response was not valid JSON. Return ONLY a JSON object with this exact structure:
{
  "tasks": [
    {
      "title": "string",
      "due": "YYYY-MM-DD" | null,
      "tags": ["string"] | null
    }
  ]
}

Do not include any text before or after the JSON object."""


TASK_EXTRACTION_STRICT_USER_PROMPT = "Extract tasks from: {excerpt}"

# Characters of the chunk resent with the strict prompt
STRICT_EXCERPT_LENGTH = 1000


# =============================================================================
# Health Check Prompts
# =============================================================================

HEALTH_CHECK_SYSTEM_PROMPT = "You are a test assistant. Return only the requested JSON."

HEALTH_CHECK_USER_PROMPT = 'Return only this JSON: {"test": true}'


def format_prompt(template: str, **kwargs) -> str:
    """
    Format a prompt template with the given arguments.

    Args:
        template: Prompt template string
        **kwargs: Values to substitute

    Returns:
        Formatted prompt string
    """
    return template.format(**kwargs)
