"""
Line-level diff computation for note editing.

Provides server-side diff computation that produces hunks suitable for
hunk-by-hunk review, plus the reconciliation step that rebuilds a document
from per-hunk decisions. Uses Python's difflib for line-based comparison.

Hunk text always carries its own line terminators, so rebuilding a document
is plain concatenation of hunk texts.
"""

import difflib
from dataclasses import dataclass, replace
from typing import Dict, List, Literal, Optional

HunkKind = Literal["unchanged", "added", "removed", "modified"]
HunkStatus = Literal["pending", "accepted", "rejected", "revised"]

HUNK_KINDS = ("unchanged", "added", "removed", "modified")
HUNK_STATUSES = ("pending", "accepted", "rejected", "revised")


@dataclass
class DiffHunk:
    """
    A single hunk of a diff.

    Attributes:
        kind: Type of change - 'unchanged', 'added', 'removed', or 'modified'
        original: Original text (empty for 'added')
        proposed: Proposed text (empty for 'removed')
        id: Stable identifier for per-hunk operations (e.g., 'h1', 'h2')
        orig_start: 1-based start line in original text (None for pure inserts)
        orig_end: 1-based end line in original text (None for pure inserts)
        new_start: 1-based start line in proposed text (None for pure deletes)
        new_end: 1-based end line in proposed text (None for pure deletes)
        orig_line_count: Lines this hunk covers in the original text
        new_line_count: Lines this hunk covers in the proposed text

    The line counts are measured by compute_line_diff before any display
    truncation, so ranges stay exact for abbreviated unchanged hunks.
    When omitted they are counted from the text.
    """
    kind: HunkKind
    original: str
    proposed: str
    id: str | None = None
    orig_start: int | None = None
    orig_end: int | None = None
    new_start: int | None = None
    new_end: int | None = None
    orig_line_count: int | None = None
    new_line_count: int | None = None

    def __post_init__(self) -> None:
        if self.orig_line_count is None:
            self.orig_line_count = len(self.original.splitlines())
        if self.new_line_count is None:
            self.new_line_count = len(self.proposed.splitlines())


@dataclass
class HunkDecision:
    """
    User decision for a single diff hunk.

    Attributes:
        status: Decision status - 'pending', 'accepted', 'rejected', or 'revised'
        revised_text: Replacement text when status is 'revised'
    """
    status: HunkStatus
    revised_text: str | None = None


@dataclass
class ReconcileResult:
    """
    Outcome of apply_hunk_decisions.

    Exactly one of the fields is set: the rebuilt document, or the ID of
    the first hunk that still needs a decision.
    """
    content: str | None = None
    unresolved_hunk_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.unresolved_hunk_id is None


def compute_line_diff(
    original: str,
    proposed: str,
    context_lines: int = 3,
    max_unchanged_lines: int = 5,
    truncate_unchanged: bool = True,
) -> List[DiffHunk]:
    """
    Compute line-level diff between original and proposed content.

    Args:
        original: Original text content
        proposed: Proposed text content
        context_lines: Number of context lines around changes (reserved, no effect)
        max_unchanged_lines: Maximum lines to show in unchanged hunks
        truncate_unchanged: If True, truncate long unchanged sections for display.
            Set to False when computing diffs for content reconstruction.

    Returns:
        List of DiffHunk objects (without IDs) covering both texts in order
    """
    orig_lines = original.splitlines(keepends=True)
    new_lines = proposed.splitlines(keepends=True)

    if not orig_lines and not new_lines:
        return []

    if not orig_lines:
        return [DiffHunk(
            kind="added",
            original="",
            proposed=proposed,
            orig_line_count=0,
            new_line_count=len(new_lines),
        )]

    if not new_lines:
        return [DiffHunk(
            kind="removed",
            original=original,
            proposed="",
            orig_line_count=len(orig_lines),
            new_line_count=0,
        )]

    matcher = difflib.SequenceMatcher(a=orig_lines, b=new_lines, autojunk=False)
    runs: List[DiffHunk] = []

    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        orig_text = "".join(orig_lines[i1:i2])
        new_text = "".join(new_lines[j1:j2])

        if tag == "equal":
            runs.append(DiffHunk(
                kind="unchanged",
                original=orig_text,
                proposed=new_text,
                orig_line_count=i2 - i1,
                new_line_count=j2 - j1,
            ))
            continue

        # 'replace' yields a removed run followed by an added run;
        # _merge_runs folds that pair into a single 'modified' hunk.
        if tag in ("delete", "replace"):
            runs.append(DiffHunk(
                kind="removed",
                original=orig_text,
                proposed="",
                orig_line_count=i2 - i1,
                new_line_count=0,
            ))
        if tag in ("insert", "replace"):
            runs.append(DiffHunk(
                kind="added",
                original="",
                proposed=new_text,
                orig_line_count=0,
                new_line_count=j2 - j1,
            ))

    hunks = _merge_runs(runs)

    if truncate_unchanged:
        hunks = truncate_unchanged_hunks(hunks, max_unchanged_lines)

    return hunks


def _merge_runs(runs: List[DiffHunk]) -> List[DiffHunk]:
    """Fold removed+added pairs into 'modified' and coalesce same-kind runs."""
    merged: List[DiffHunk] = []

    for run in runs:
        previous = merged[-1] if merged else None

        if previous is not None and previous.kind == "removed" and run.kind == "added":
            merged[-1] = DiffHunk(
                kind="modified",
                original=previous.original,
                proposed=run.proposed,
                orig_line_count=previous.orig_line_count,
                new_line_count=run.new_line_count,
            )
        elif previous is not None and previous.kind == run.kind:
            merged[-1] = DiffHunk(
                kind=run.kind,
                original=previous.original + run.original,
                proposed=previous.proposed + run.proposed,
                orig_line_count=previous.orig_line_count + run.orig_line_count,
                new_line_count=previous.new_line_count + run.new_line_count,
            )
        else:
            merged.append(run)

    return merged


def elide_unchanged_text(text: str, max_lines: int = 5) -> str:
    """
    Abbreviate a long unchanged section for display.

    Keeps the first and last max_lines // 2 lines and replaces the rest with
    a single "... (N lines unchanged) ..." marker line. Text with at most
    max_lines lines is returned as-is.
    """
    lines = text.splitlines(keepends=True)
    if len(lines) <= max_lines:
        return text

    half = max_lines // 2
    hidden = len(lines) - 2 * half
    head = "".join(lines[:half])
    tail = "".join(lines[len(lines) - half:])
    return f"{head}... ({hidden} lines unchanged) ...\n{tail}"


def truncate_unchanged_hunks(
    hunks: List[DiffHunk],
    max_lines: int = 5,
) -> List[DiffHunk]:
    """
    Truncate long unchanged sections for display purposes.

    Only the text changes; line counts and ranges are carried over, so this
    may run before or after annotate_hunks_with_ids.
    """
    result: List[DiffHunk] = []
    for hunk in hunks:
        if hunk.kind == "unchanged" and hunk.original:
            display = elide_unchanged_text(hunk.original, max_lines)
            if display != hunk.original:
                hunk = replace(hunk, original=display, proposed=display)
        result.append(hunk)
    return result


def count_changes(hunks: List[DiffHunk]) -> Dict[str, int]:
    """
    Count the number of hunks by kind.

    Returns:
        Dict with keys: added, removed, modified, unchanged
    """
    counts = {"added": 0, "removed": 0, "modified": 0, "unchanged": 0}
    for hunk in hunks:
        counts[hunk.kind] += 1
    return counts


def annotate_hunks_with_ids(hunks: List[DiffHunk]) -> List[DiffHunk]:
    """
    Annotate hunks with stable IDs and line ranges.

    Assigns sequential IDs ('h1', 'h2', ...) and computes orig_start/orig_end
    and new_start/new_end from the measured line counts.

    IDs are only meaningful within one hunk sequence: diffing other inputs
    reuses the same ID values for different hunks.

    Args:
        hunks: List of DiffHunk objects from compute_line_diff

    Returns:
        New list of DiffHunk objects with id and line range fields populated
    """
    annotated: List[DiffHunk] = []
    orig_line = 1
    new_line = 1

    for i, hunk in enumerate(hunks):
        orig_len = hunk.orig_line_count or 0
        new_len = hunk.new_line_count or 0

        orig_start: Optional[int] = None
        orig_end: Optional[int] = None
        new_start: Optional[int] = None
        new_end: Optional[int] = None

        if hunk.kind != "added" and orig_len > 0:
            orig_start = orig_line
            orig_end = orig_line + orig_len - 1
            orig_line += orig_len

        if hunk.kind != "removed" and new_len > 0:
            new_start = new_line
            new_end = new_line + new_len - 1
            new_line += new_len

        annotated.append(replace(
            hunk,
            id=f"h{i + 1}",
            orig_start=orig_start,
            orig_end=orig_end,
            new_start=new_start,
            new_end=new_end,
        ))

    return annotated


def apply_hunk_decisions(
    hunks: List[DiffHunk],
    decisions: Dict[str, HunkDecision],
) -> ReconcileResult:
    """
    Apply per-hunk decisions to produce the final merged content.

    This is a pure, stateless function. Reconstruction is all-or-nothing:
    the first changed hunk without a decision (or with a 'pending' one)
    stops it and is reported in the result; no partial content is returned.

    | kind      | accepted | rejected | revised      |
    |-----------|----------|----------|--------------|
    | unchanged | original (decisions ignored)        |
    | added     | proposed | omitted  | revised_text |
    | removed   | omitted  | original | revised_text |
    | modified  | proposed | original | revised_text |

    Args:
        hunks: List of annotated, untruncated DiffHunk objects
        decisions: Map from hunk.id to HunkDecision

    Returns:
        ReconcileResult with either content or unresolved_hunk_id set
    """
    segments: List[str] = []

    for hunk in hunks:
        if hunk.kind == "unchanged":
            segments.append(hunk.original)
            continue

        hunk_id = hunk.id or ""
        decision = decisions.get(hunk_id)

        if decision is None or decision.status == "pending":
            return ReconcileResult(unresolved_hunk_id=hunk_id)

        # 'added' hunks have empty original text and 'removed' hunks empty
        # proposed text, so these two branches cover the omit cases too.
        if decision.status == "accepted":
            segments.append(hunk.proposed)
        elif decision.status == "rejected":
            segments.append(hunk.original)
        elif decision.status == "revised":
            segments.append(decision.revised_text or "")
        else:
            raise ValueError(f"Unknown status {decision.status!r} for hunk {hunk_id}")

    return ReconcileResult(content="".join(segments))
