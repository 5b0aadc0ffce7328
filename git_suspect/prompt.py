"""Reasoning request assembly."""

from git_suspect.models import DiffContext

VERDICT_FIELD = "probability"
REASONING_FIELD = "reasoning"

SYSTEM_INSTRUCTION = (
    "You are a senior engineer debugging a regression, and a skeptical reviewer.\n"
    "Decide whether ONE commit introduced the bug described below.\n"
    "Assume the commit is innocent until the diffs show a concrete mechanism: a logic\n"
    "contradiction, a removed guard, a new path that lets a bad value through.\n"
    "Circumstantial overlap (same file, similar names) is not enough for a high rating."
)

METHOD = (
    "Work through these steps and write out your reasoning for each:\n"
    "0. Hypotheses: from the bug description alone, list 2-3 technical causes that\n"
    "   could produce it. Note any concrete values or states it mentions and trace\n"
    "   where they could come from in the diffs.\n"
    "1. Immediate change: read the STANDARD DIFF. What behavior changed? Could it\n"
    "   produce the failure directly?\n"
    "2. Evolution: read the EVOLUTION DIFF (this commit's files, from this commit\n"
    "   to the branch tip). Does the change survive at the tip? Was it later\n"
    "   reworked in a way that matters for the bug?\n"
    "3. Classification:\n"
    "   - HIGH: a smoking gun. The change directly causes or enables the failure.\n"
    "   - MEDIUM: the change touches the relevant code path and plausibly could\n"
    "     cause it, but it is not proven. Worth a manual look.\n"
    "   - LOW: no direct or plausible link."
)

OUTPUT_FORMAT = (
    "Hypothesis: <candidate causes>\n"
    "Reasoning: <step-by-step tracing>\n"
    "Classification: <HIGH|MEDIUM|LOW>\n"
    "\n"
    "End your answer with this JSON object, without markdown fences:\n"
    "{\n"
    f'  "{VERDICT_FIELD}": "HIGH|MEDIUM|LOW",\n'
    f'  "{REASONING_FIELD}": "one or two sentences summarizing the verdict"\n'
    "}"
)


def build_prompt(bug_description: str, context: DiffContext) -> str:
    """Assemble the request for one commit from its dual diff."""
    commit = context.commit
    files = ", ".join(context.touched_files) if context.touched_files else "(none)"
    commit_block = (
        f"id: {commit.hexsha}\n"
        f"author: {commit.author}\n"
        f"date: {commit.date}\n"
        f"files: {files}\n"
        f"message: {commit.message}"
    )
    return (
        f"[SYSTEM]\n{SYSTEM_INSTRUCTION}\n\n"
        f"[BUG DESCRIPTION]\n{bug_description.strip()}\n\n"
        f"[COMMIT]\n{commit_block}\n\n"
        f"[STANDARD DIFF] (parent -> this commit)\n{context.standard_diff or '(empty)'}\n\n"
        f"[EVOLUTION DIFF] (this commit -> branch tip, same files only)\n{context.full_diff or '(empty)'}\n\n"
        f"[METHOD]\n{METHOD}\n\n"
        f"[OUTPUT FORMAT]\n{OUTPUT_FORMAT}\n\n"
        "[ANSWER]"
    )
